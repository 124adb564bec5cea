from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat, utcnow
from .enums import SubscriptionStatus


class Subscription(db.Model, TimestampMixin):
    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    razorpay_subscription_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    amount = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default='INR')
    addon_ids = db.Column(db.JSON, default=list)  # add-ons billed by this subscription
    payment_link = db.Column(db.String(500))
    start_date = db.Column(db.DateTime, default=utcnow, nullable=False)
    end_date = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'razorpay_subscription_id': self.razorpay_subscription_id,
            'status': self.status,
            'amount': self.amount,
            'currency': self.currency,
            'addon_ids': self.addon_ids or [],
            'payment_link': self.payment_link,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
        }
