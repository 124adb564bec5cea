from cognicare.extensions import db
from .base import generate_uuid, isoformat, utcnow
from .enums import BackupReason, BackupType


class Backup(db.Model):
    """Immutable point-in-time export of one organization"""
    __tablename__ = 'backups'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    backup_type = db.Column(db.String(10), nullable=False, default=BackupType.CLOUD.value)  # LOCAL or CLOUD
    reason = db.Column(db.String(20), nullable=False, default=BackupReason.MANUAL.value)
    storage_url = db.Column(db.String(500))  # where a CLOUD backup was uploaded
    content = db.Column(db.Text)  # serialized snapshot
    size_bytes = db.Column(db.Integer, default=0)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'backup_type': self.backup_type,
            'reason': self.reason,
            'storage_url': self.storage_url,
            'size_bytes': self.size_bytes,
            'created_by': self.created_by,
            'created_at': isoformat(self.created_at),
        }
