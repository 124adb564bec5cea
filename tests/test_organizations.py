"""Organization creation, membership and the invite/join workflow."""
from datetime import timedelta

from cognicare.extensions import db
from cognicare.models import Invite, User
from cognicare.models.base import utcnow


def invite(client, headers, email, role='DOCTOR'):
    return client.post('/api/organizations/invite', headers=headers, json={'email': email, 'role': role})


class TestCreateOrganization:

    def test_creator_becomes_admin_and_cannot_create_twice(self, client, make_user, auth_header):
        user = make_user(role='DOCTOR')
        headers = auth_header(user)

        response = client.post('/api/organizations', headers=headers, json={'name': 'Lotus Care'})
        assert response.status_code == 201
        org_id = response.get_json()['organization']['id']

        refreshed = db.session.get(User, user.id)
        db.session.refresh(refreshed)
        assert refreshed.organization_id == org_id
        assert refreshed.role == 'ADMIN'

        response = client.post('/api/organizations', headers=headers, json={'name': 'Second Org'})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'ALREADY_IN_ORGANIZATION'

    def test_invalid_gst_number(self, client, make_user, auth_header):
        user = make_user()
        response = client.post('/api/organizations', headers=auth_header(user),
                               json={'name': 'Lotus Care', 'gst_number': '123'})
        assert response.status_code == 400


class TestOrganizationProfile:

    def test_me_includes_members_clinics_and_counts(self, client, tenant, make_patient):
        make_patient(tenant.clinic)
        response = client.get('/api/organizations/me', headers=tenant.staff_headers)
        org = response.get_json()['organization']
        assert response.status_code == 200
        assert org['id'] == tenant.org.id
        assert org['counts'] == {'clinics': 1, 'users': 4, 'patients': 1, 'appointments': 0}
        assert {u['id'] for u in org['users']} == {
            tenant.admin.id, tenant.doctor.id, tenant.other_doctor.id, tenant.staff.id
        }

    def test_only_admin_updates_profile(self, client, tenant):
        response = client.put('/api/organizations/me', headers=tenant.doctor_headers, json={'name': 'Renamed'})
        assert response.status_code == 403

        response = client.put('/api/organizations/me', headers=tenant.admin_headers, json={'name': 'Renamed'})
        assert response.status_code == 200
        assert response.get_json()['organization']['name'] == 'Renamed'


class TestMembers:

    def test_last_admin_cannot_be_removed(self, client, tenant):
        response = client.delete(f'/api/organizations/users/{tenant.admin.id}', headers=tenant.admin_headers)
        assert response.status_code == 409
        assert response.get_json()['code'] == 'LAST_ADMIN'

    def test_non_last_admin_can_be_removed(self, client, tenant, make_user):
        second_admin = make_user(tenant.org, 'ADMIN')
        response = client.delete(f'/api/organizations/users/{second_admin.id}', headers=tenant.admin_headers)
        assert response.status_code == 200
        assert db.session.get(User, second_admin.id).organization_id is None

    def test_non_admin_member_can_be_removed(self, client, tenant):
        response = client.delete(f'/api/organizations/users/{tenant.staff.id}', headers=tenant.admin_headers)
        assert response.status_code == 200

    def test_user_of_other_organization_is_not_found(self, client, tenant, other_tenant):
        response = client.delete(f'/api/organizations/users/{other_tenant.admin.id}', headers=tenant.admin_headers)
        assert response.status_code == 404

    def test_doctor_cannot_remove_members(self, client, tenant):
        response = client.delete(f'/api/organizations/users/{tenant.staff.id}', headers=tenant.doctor_headers)
        assert response.status_code == 403

    def test_users_listing_has_activity_counts(self, client, tenant):
        response = client.get('/api/organizations/users', headers=tenant.staff_headers)
        users = response.get_json()['users']
        assert len(users) == 4
        assert all('appointment_count' in u and 'ehr_count' in u for u in users)


class TestInvites:

    def test_invite_and_join(self, client, tenant, make_user, auth_header):
        response = invite(client, tenant.admin_headers, 'joiner@example.com', 'STAFF')
        assert response.status_code == 201
        token = Invite.query.filter_by(email='joiner@example.com').one().token

        joiner = make_user(email='joiner@example.com')
        response = client.post(f'/api/organizations/join/{token}', headers=auth_header(joiner))
        assert response.status_code == 200
        assert response.get_json()['role'] == 'STAFF'

        joined = db.session.get(User, joiner.id)
        db.session.refresh(joined)
        assert joined.organization_id == tenant.org.id
        assert joined.role == 'STAFF'

    def test_consumed_invite_cannot_be_reused(self, client, tenant, make_user, auth_header):
        invite(client, tenant.admin_headers, 'joiner@example.com')
        token = Invite.query.filter_by(email='joiner@example.com').one().token
        joiner = make_user(email='joiner@example.com')
        assert client.post(f'/api/organizations/join/{token}', headers=auth_header(joiner)).status_code == 200

        response = client.post(f'/api/organizations/join/{token}', headers=auth_header(joiner))
        assert response.status_code == 409
        assert response.get_json()['code'] == 'INVITE_CONSUMED'

    def test_expired_invite(self, client, tenant, make_user, auth_header):
        invite(client, tenant.admin_headers, 'late@example.com')
        record = Invite.query.filter_by(email='late@example.com').one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        late = make_user(email='late@example.com')
        response = client.post(f'/api/organizations/join/{record.token}', headers=auth_header(late))
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVITE_EXPIRED'

    def test_unknown_token(self, client, make_user, auth_header):
        response = client.post('/api/organizations/join/does-not-exist', headers=auth_header(make_user()))
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_INVITE'

    def test_member_of_another_organization_cannot_join(self, client, tenant, other_tenant):
        invite(client, tenant.admin_headers, other_tenant.admin.email)
        assert client.post('/api/organizations/invite', headers=tenant.admin_headers,
                           json={'email': 'fresh@example.com'}).status_code == 201
        record = Invite.query.filter_by(email='fresh@example.com').one()

        response = client.post(f'/api/organizations/join/{record.token}', headers=other_tenant.admin_headers)
        assert response.status_code == 409
        assert response.get_json()['code'] == 'ALREADY_IN_ORGANIZATION'

    def test_invite_for_existing_account_is_rejected(self, client, tenant):
        response = invite(client, tenant.admin_headers, tenant.doctor.email)
        assert response.status_code == 409
        assert response.get_json()['code'] == 'DUPLICATE_EMAIL'

    def test_second_pending_invite_is_rejected(self, client, tenant):
        assert invite(client, tenant.admin_headers, 'twice@example.com').status_code == 201
        response = invite(client, tenant.admin_headers, 'twice@example.com')
        assert response.status_code == 409
        assert response.get_json()['code'] == 'PENDING_INVITE'

    def test_invite_issued_to_another_email(self, client, tenant, make_user, auth_header):
        invite(client, tenant.admin_headers, 'intended@example.com')
        token = Invite.query.filter_by(email='intended@example.com').one().token
        stranger = make_user(email='stranger@example.com')

        response = client.post(f'/api/organizations/join/{token}', headers=auth_header(stranger))
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVITE_EMAIL_MISMATCH'

    def test_only_admin_invites(self, client, tenant):
        response = invite(client, tenant.staff_headers, 'someone@example.com')
        assert response.status_code == 403
