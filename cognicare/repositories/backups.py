from cognicare.errors import NotFound, PermissionDenied
from cognicare.models import Backup
from cognicare.models.enums import BackupType
from .base import TenantRepository


class BackupRepository(TenantRepository):
    model = Backup
    entity_name = 'Backup'

    def latest(self, scope, backup_type=BackupType.CLOUD.value):
        backup = (
            self.query(scope)
            .filter(Backup.backup_type == backup_type)
            .order_by(Backup.created_at.desc())
            .first()
        )
        if not backup:
            raise NotFound('No backup found')
        return backup

    def latest_since(self, scope, since, backup_type=BackupType.CLOUD.value):
        return (
            self.query(scope)
            .filter(Backup.backup_type == backup_type, Backup.created_at >= since)
            .order_by(Backup.created_at.desc())
            .first()
        )

    def update(self, scope, entity_id, payload):
        raise PermissionDenied('Backups are immutable')

    def delete(self, scope, entity_id):
        raise PermissionDenied('Backups are immutable')
