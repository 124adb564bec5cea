"""
Audit log for create, update, archive, cancel, restore and membership changes.
"""
from cognicare.extensions import db
from .base import isoformat, utcnow


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=True, index=True)
    entity_type = db.Column(db.String(64), nullable=False, index=True)  # patient, appointment, ehr_record, backup, etc.
    entity_id = db.Column(db.String(64), nullable=True, index=True)
    action = db.Column(db.String(32), nullable=False, index=True)  # create, update, archive, cancel, restore
    user_id = db.Column(db.String(36), nullable=True, index=True)
    details = db.Column(db.Text, nullable=True)  # JSON
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "details": self.details,
            "created_at": isoformat(self.created_at),
        }
