"""
Add-on catalog (global) and per-organization enablement
"""
from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat


class AddOn(db.Model, TimestampMixin):
    __tablename__ = 'addons'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit per billing period
    billing_model = db.Column(db.String(20), nullable=False, default='MONTHLY')  # MONTHLY or USAGE
    is_available = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'billing_model': self.billing_model,
        }


class OrganizationAddOn(db.Model, TimestampMixin):
    __tablename__ = 'organization_addons'
    __table_args__ = (
        db.UniqueConstraint('organization_id', 'addon_id', name='uq_organization_addon'),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    addon_id = db.Column(db.String(36), db.ForeignKey('addons.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    usage_count = db.Column(db.Integer, default=0, nullable=False)

    addon = db.relationship('AddOn')

    def to_dict(self):
        data = self.addon.to_dict() if self.addon else {'id': self.addon_id}
        data.update({
            'organization_addon_id': self.id,
            'is_active': self.is_active,
            'usage_count': self.usage_count,
            'enabled_at': isoformat(self.created_at),
        })
        return data
