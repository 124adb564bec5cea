"""Cloud and local backups, restore points and scheduled backups."""
import json

from cognicare.extensions import db
from cognicare.models import Backup, Patient
from cognicare.services.backup_service import build_snapshot
from tasks.backup_tasks import scheduled_cloud_backups


class TestCloudBackup:

    def test_trigger_is_rate_limited(self, client, tenant):
        first = client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers)
        assert first.status_code == 201
        assert first.get_json()['backup']['backup_type'] == 'CLOUD'

        second = client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers)
        body = second.get_json()
        assert second.status_code == 429
        assert body['code'] == 'RATE_LIMITED'
        assert body['details']['retry_after_seconds'] > 0

    def test_cooldown_is_per_organization(self, client, tenant, other_tenant):
        assert client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers).status_code == 201
        assert client.post('/api/backup/cloud/trigger', headers=other_tenant.admin_headers).status_code == 201

    def test_latest_has_download_link(self, client, tenant):
        assert client.get('/api/backup/cloud/latest', headers=tenant.admin_headers).status_code == 404

        client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers)
        backup = client.get('/api/backup/cloud/latest', headers=tenant.admin_headers).get_json()['backup']
        assert backup['storage_url'].endswith('.json')
        assert 'signature=' in backup['download_url']
        assert backup['expires_at']

    def test_admin_only(self, client, tenant):
        assert client.post('/api/backup/cloud/trigger', headers=tenant.doctor_headers).status_code == 403
        assert client.get('/api/backup/history', headers=tenant.staff_headers).status_code == 403
        assert client.post('/api/backup/restore', headers=tenant.staff_headers, json={}).status_code == 403


class TestLocalBackup:

    def test_download_is_full_snapshot(self, client, tenant, make_patient):
        make_patient(tenant.clinic)
        response = client.get('/api/backup/local', headers=tenant.admin_headers)

        assert response.status_code == 200
        assert 'attachment; filename="cognicare-backup-' in response.headers['Content-Disposition']
        snapshot = json.loads(response.data)
        assert snapshot['organization']['id'] == tenant.org.id
        assert len(snapshot['patients']) == 1
        assert len(snapshot['users']) == 4
        assert 'password_hash' not in snapshot['users'][0]
        assert Backup.query.filter_by(backup_type='LOCAL', reason='MANUAL').count() == 1

    def test_history_pagination(self, client, tenant):
        client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers)
        client.get('/api/backup/local', headers=tenant.admin_headers)
        client.get('/api/backup/local', headers=tenant.admin_headers)

        body = client.get('/api/backup/history?limit=2', headers=tenant.admin_headers).get_json()
        assert body['pagination'] == {'total': 3, 'page': 1, 'limit': 2, 'totalPages': 2}
        assert len(body['backups']) == 2


class TestRestore:

    def test_invalid_shape_still_leaves_restore_point(self, client, tenant):
        response = client.post('/api/backup/restore', headers=tenant.admin_headers,
                               json={'backup_data': {'patients': []}})
        body = response.get_json()
        assert response.status_code == 400
        restore_point = db.session.get(Backup, body['details']['restore_point_id'])
        assert restore_point.reason == 'PRE_RESTORE'

    def test_round_trip(self, client, tenant, make_patient):
        patient = make_patient(tenant.clinic, name='Original Name')
        snapshot = json.loads(client.get('/api/backup/local', headers=tenant.admin_headers).data)

        db.session.get(Patient, patient.id).name = 'Changed Name'
        db.session.commit()

        response = client.post('/api/backup/restore', headers=tenant.admin_headers, json={'backup_data': snapshot})
        body = response.get_json()
        assert response.status_code == 200
        assert body['restored_records']['patients'] == 1
        assert body['restored_records']['clinics'] == 1
        assert db.session.get(Backup, body['restore_point_id']).reason == 'PRE_RESTORE'

        restored = db.session.get(Patient, patient.id)
        db.session.refresh(restored)
        assert restored.name == 'Original Name'

    def test_restore_recreates_missing_rows(self, client, tenant, make_patient):
        patient = make_patient(tenant.clinic)
        snapshot = json.loads(client.get('/api/backup/local', headers=tenant.admin_headers).data)
        db.session.delete(db.session.get(Patient, patient.id))
        db.session.commit()

        client.post('/api/backup/restore', headers=tenant.admin_headers, json={'backup_data': snapshot})
        assert db.session.get(Patient, patient.id) is not None

    def test_other_organizations_snapshot_is_rejected(self, client, tenant, other_tenant):
        foreign = json.loads(json.dumps(build_snapshot(db.session, other_tenant.org.id), default=str))
        response = client.post('/api/backup/restore', headers=tenant.admin_headers, json={'backup_data': foreign})
        assert response.status_code == 400

        db.session.refresh(other_tenant.patient)
        assert other_tenant.patient.clinic_id == other_tenant.clinic.id

    def test_foreign_rows_inside_own_snapshot_are_skipped(self, client, tenant, other_tenant):
        snapshot = json.loads(client.get('/api/backup/local', headers=tenant.admin_headers).data)
        snapshot['patients'].append({
            'id': other_tenant.patient.id, 'clinic_id': tenant.clinic.id,
            'name': 'Stolen', 'phone': '9000000001',
        })

        body = client.post('/api/backup/restore', headers=tenant.admin_headers,
                           json={'backup_data': snapshot}).get_json()
        assert body['restored_records']['skipped'] == 1
        db.session.refresh(other_tenant.patient)
        assert other_tenant.patient.name != 'Stolen'


class TestScheduledBackups:

    def test_every_organization_is_backed_up(self, client, tenant, other_tenant):
        result = scheduled_cloud_backups.run()
        assert result['success'] is True
        assert result['total'] == 2
        assert Backup.query.filter_by(reason='SCHEDULED', backup_type='CLOUD').count() == 2

        # Scheduled backups count toward the manual cooldown
        response = client.post('/api/backup/cloud/trigger', headers=tenant.admin_headers)
        assert response.status_code == 429
