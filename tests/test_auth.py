"""Signup, verification, login, password reset and the caller resolver."""
from datetime import timedelta

from cognicare.extensions import db
from cognicare.models import User
from cognicare.models.base import utcnow

from conftest import PASSWORD


def signup(client, email='new@example.com', password='secret123', **extra):
    payload = {'email': email, 'password': password, 'name': 'New Doctor', **extra}
    return client.post('/api/auth/signup', json=payload)


class TestSignupAndVerification:

    def test_signup_then_unverified_login_is_rejected(self, client):
        response = signup(client)
        assert response.status_code == 201
        assert response.get_json()['user']['organization_id'] is None

        response = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'secret123'})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'EMAIL_NOT_VERIFIED'

    def test_verify_email_enables_login(self, client):
        signup(client)
        user = User.query.filter_by(email='new@example.com').one()

        response = client.post('/api/auth/verify-email', json={'token': user.email_verification_token})
        assert response.status_code == 200

        response = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'secret123'})
        body = response.get_json()
        assert response.status_code == 200
        assert body['token']
        assert body['user']['email'] == 'new@example.com'
        assert db.session.get(User, user.id).last_login is not None

    def test_verification_token_expires_after_a_day(self, client):
        signup(client)
        user = User.query.filter_by(email='new@example.com').one()
        user.email_verification_sent_at = utcnow() - timedelta(hours=25)
        db.session.commit()

        response = client.post('/api/auth/verify-email', json={'token': user.email_verification_token})
        assert response.status_code == 400
        assert response.get_json()['code'] == 'TOKEN_EXPIRED'

    def test_duplicate_email_is_rejected(self, client):
        signup(client)
        response = signup(client, email='NEW@example.com')
        assert response.status_code == 409
        assert response.get_json()['code'] == 'DUPLICATE_EMAIL'

    def test_short_password_is_rejected(self, client):
        response = signup(client, password='abc')
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_password_is_kept_exactly_as_sent(self, client):
        signup(client, password=' secret123 ')
        user = User.query.filter_by(email='new@example.com').one()
        client.post('/api/auth/verify-email', json={'token': user.email_verification_token})

        response = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': ' secret123 '})
        assert response.status_code == 200
        response = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'secret123'})
        assert response.status_code == 401

    def test_signup_ignores_organization_id(self, client, make_org):
        org = make_org()
        response = signup(client, organizationId=org.id, organization_id=org.id)
        assert response.status_code == 201
        assert User.query.filter_by(email='new@example.com').one().organization_id is None

    def test_resend_verification_does_not_reveal_unknown_email(self, client):
        response = client.post('/api/auth/resend-verification', json={'email': 'ghost@example.com'})
        assert response.status_code == 200


class TestLogin:

    def test_wrong_password(self, client, make_user):
        user = make_user()
        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'nope-nope'})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'INVALID_CREDENTIALS'

    def test_unknown_email_looks_like_wrong_password(self, client):
        response = client.post('/api/auth/login', json={'email': 'nobody@example.com', 'password': PASSWORD})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'INVALID_CREDENTIALS'

    def test_login_token_resolves_to_caller(self, client, make_org, make_user):
        user = make_user(make_org())
        token = client.post('/api/auth/login', json={'email': user.email, 'password': PASSWORD}).get_json()['token']

        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200
        assert response.get_json()['user']['id'] == user.id


class TestPasswordReset:

    def test_forgot_password_same_response_for_unknown_email(self, client, make_user):
        user = make_user()
        known = client.post('/api/auth/forgot-password', json={'email': user.email})
        unknown = client.post('/api/auth/forgot-password', json={'email': 'ghost@example.com'})
        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json()

    def test_reset_password_flow(self, client, make_user):
        user = make_user()
        client.post('/api/auth/forgot-password', json={'email': user.email})
        token = db.session.get(User, user.id).password_reset_token

        response = client.post('/api/auth/reset-password', json={'token': token, 'password': 'brand-new-pass'})
        assert response.status_code == 200

        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'brand-new-pass'})
        assert response.status_code == 200

        # Tokens are single use
        response = client.post('/api/auth/reset-password', json={'token': token, 'password': 'another-pass'})
        assert response.status_code == 400

    def test_reset_keeps_surrounding_spaces(self, client, make_user):
        user = make_user()
        client.post('/api/auth/forgot-password', json={'email': user.email})
        token = db.session.get(User, user.id).password_reset_token

        client.post('/api/auth/reset-password', json={'token': token, 'password': '  spaced-pass  '})
        response = client.post('/api/auth/login', json={'email': user.email, 'password': '  spaced-pass  '})
        assert response.status_code == 200

    def test_expired_reset_token(self, client, make_user):
        user = make_user()
        client.post('/api/auth/forgot-password', json={'email': user.email})
        user = db.session.get(User, user.id)
        user.password_reset_expires = utcnow() - timedelta(minutes=1)
        db.session.commit()

        response = client.post('/api/auth/reset-password', json={'token': user.password_reset_token, 'password': 'whatever1'})
        assert response.status_code == 400


class TestCallerResolution:

    def test_missing_token(self, client):
        response = client.get('/api/auth/me')
        assert response.status_code == 401
        assert response.get_json()['code'] == 'TOKEN_MISSING'

    def test_garbage_token(self, client):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'INVALID_TOKEN'

    def test_expired_token(self, client, make_user, auth_header):
        user = make_user()
        response = client.get('/api/auth/me', headers=auth_header(user, expires_delta=timedelta(seconds=-10)))
        assert response.status_code == 401
        assert response.get_json()['code'] == 'TOKEN_EXPIRED'

    def test_deleted_user(self, client, make_user, auth_header):
        user = make_user()
        headers = auth_header(user)
        db.session.delete(user)
        db.session.commit()

        response = client.get('/api/auth/me', headers=headers)
        assert response.status_code == 401
        assert response.get_json()['code'] == 'USER_NOT_FOUND'

    def test_unverified_user(self, client, make_user, auth_header):
        user = make_user(verified=False)
        response = client.get('/api/auth/me', headers=auth_header(user))
        assert response.status_code == 401
        assert response.get_json()['code'] == 'EMAIL_NOT_VERIFIED'

    def test_no_organization_blocks_tenant_routes(self, client, make_user, auth_header):
        user = make_user()
        headers = auth_header(user)

        assert client.get('/api/auth/me', headers=headers).status_code == 200
        response = client.get('/api/patients', headers=headers)
        assert response.status_code == 403
        assert response.get_json()['code'] == 'NO_ORGANIZATION'

    def test_role_change_applies_to_existing_token(self, client, tenant):
        assert client.post('/api/clinics', headers=tenant.doctor_headers, json={
            'name': 'North Wing', 'address': '45 Ring Road, Pune', 'phone': '9876500000',
        }).status_code == 403

        db.session.get(User, tenant.doctor.id).role = 'ADMIN'
        db.session.commit()

        response = client.post('/api/clinics', headers=tenant.doctor_headers, json={
            'name': 'North Wing', 'address': '45 Ring Road, Pune', 'phone': '9876500000',
        })
        assert response.status_code == 201
