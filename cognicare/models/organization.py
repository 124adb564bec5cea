"""
Organization Model - the root tenant
"""
from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat


class Organization(db.Model, TimestampMixin):
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(500))
    gst_number = db.Column(db.String(20))
    contact_email = db.Column(db.String(120))
    contact_phone = db.Column(db.String(20))

    # Relationships
    users = db.relationship('User', backref='organization', lazy='dynamic')
    clinics = db.relationship('Clinic', backref='organization', lazy='dynamic', cascade='all, delete-orphan')
    addons = db.relationship('OrganizationAddOn', backref='organization', lazy='dynamic', cascade='all, delete-orphan')
    subscriptions = db.relationship('Subscription', backref='organization', lazy='dynamic', cascade='all, delete-orphan')
    invites = db.relationship('Invite', backref='organization', lazy='dynamic', cascade='all, delete-orphan')
    backups = db.relationship('Backup', backref='organization', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'gst_number': self.gst_number,
            'contact_email': self.contact_email,
            'contact_phone': self.contact_phone,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Organization {self.name} ({self.id})>"
