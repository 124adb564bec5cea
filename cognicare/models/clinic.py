"""
Clinic Model - a practice location owned by one organization
"""
from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat


class Clinic(db.Model, TimestampMixin):
    __tablename__ = 'clinics'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(500), nullable=False)
    phone = db.Column(db.String(20), nullable=False)

    # Relationships
    patients = db.relationship('Patient', backref='clinic', lazy='dynamic')
    appointments = db.relationship('Appointment', backref='clinic', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Clinic {self.name} ({self.id})>"
