from cognicare.extensions import db
from .base import generate_uuid, isoformat, utcnow
from .enums import Role


class Invite(db.Model):
    __tablename__ = 'invites'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=Role.DOCTOR.value)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    invited_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)

    # Single use
    is_used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    used_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'email': self.email,
            'role': self.role,
            'invited_by': self.invited_by,
            'expires_at': isoformat(self.expires_at),
            'is_used': self.is_used,
            'used_at': isoformat(self.used_at),
            'created_at': isoformat(self.created_at),
        }
