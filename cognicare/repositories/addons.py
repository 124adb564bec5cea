import logging

from flask import current_app

from cognicare.errors import ValidationError
from cognicare.models import AddOn, OrganizationAddOn, Subscription
from cognicare.models.base import utcnow
from cognicare.models.enums import SubscriptionStatus
from cognicare.utils.scope import EntityKind, scope_for
from .base import TenantRepository

logger = logging.getLogger(__name__)


class AddOnRepository(TenantRepository):
    """Add-on catalog, per-organization enablement and subscriptions."""
    model = OrganizationAddOn
    entity_name = 'Add-on'

    def catalog(self, scope):
        """Every available add-on with the organization's enablement and usage."""
        addons = (
            scope_for(scope.caller, EntityKind.ADDON)
            .apply(self.session.query(AddOn))
            .order_by(AddOn.name.asc())
            .all()
        )
        enabled = {row.addon_id: row for row in self.query(scope).all()}
        result = []
        for addon in addons:
            org_addon = enabled.get(addon.id)
            result.append(dict(
                addon.to_dict(),
                is_enabled=bool(org_addon and org_addon.is_active),
                usage_count=org_addon.usage_count if org_addon else 0,
            ))
        return result

    def enabled(self, scope):
        return (
            self.query(scope)
            .filter(OrganizationAddOn.is_active.is_(True))
            .order_by(OrganizationAddOn.created_at.asc())
            .all()
        )

    def usage(self, scope, addon_name):
        row = (
            self.query(scope)
            .join(AddOn, OrganizationAddOn.addon_id == AddOn.id)
            .filter(AddOn.name == addon_name)
            .first()
        )
        return row.usage_count if row else 0

    def _set_active(self, organization_id, addon_ids, is_active):
        query = self.session.query(OrganizationAddOn).filter(OrganizationAddOn.organization_id == organization_id)
        if addon_ids:
            query = query.filter(OrganizationAddOn.addon_id.in_(addon_ids))
        rows = query.all()
        for row in rows:
            row.is_active = is_active
        return rows

    def subscribe(self, scope, addon_ids, services):
        """
        Enable the requested add-ons and open a gateway subscription for
        their combined price.
        """
        if not isinstance(addon_ids, list) or not addon_ids:
            raise ValidationError('addon_ids must be a non-empty list')
        requested = set(addon_ids)
        addons = (
            scope_for(scope.caller, EntityKind.ADDON)
            .apply(self.session.query(AddOn))
            .filter(AddOn.id.in_(requested))
            .all()
        )
        if len(addons) != len(requested):
            raise ValidationError('Invalid add-on IDs', details={'unknown': sorted(requested - {a.id for a in addons})})

        amount = sum(addon.price for addon in addons)
        existing = {row.addon_id: row for row in self.query(scope).filter(OrganizationAddOn.addon_id.in_(requested))}
        for addon in addons:
            row = existing.get(addon.id)
            if row:
                row.is_active = True
            else:
                self.session.add(OrganizationAddOn(
                    organization_id=scope.organization_id,
                    addon_id=addon.id,
                    is_active=True,
                    usage_count=0,
                ))

        gateway = services.create_subscription(scope.organization_id, amount, sorted(requested))
        subscription = Subscription(
            organization_id=scope.organization_id,
            razorpay_subscription_id=gateway['id'],
            status=SubscriptionStatus.ACTIVE.value,
            amount=amount,
            currency=current_app.config['BILLING_CURRENCY'],
            addon_ids=sorted(requested),
            payment_link=gateway.get('short_url'),
        )
        self.session.add(subscription)
        self.session.flush()
        return subscription

    def current_subscription(self, scope):
        return (
            scope_for(scope.caller, EntityKind.SUBSCRIPTION)
            .apply(self.session.query(Subscription))
            .order_by(Subscription.created_at.desc())
            .first()
        )

    def apply_gateway_event(self, event, payload):
        """
        Mirror a verified payment-gateway event onto the local subscription
        and its add-ons. Returns the affected Subscription, if any.
        """
        if event == 'payment.failed':
            payment = (payload.get('payment') or {}).get('entity') or {}
            logger.warning("Payment failed: payment=%s subscription=%s reason=%s",
                           payment.get('id'), payment.get('subscription_id'), payment.get('error_description'))
            return None

        if event not in ('subscription.activated', 'subscription.cancelled'):
            logger.info("Unhandled gateway event: %s", event)
            return None

        # The subscription arrives either wrapped in an entity envelope or bare
        subscription_payload = payload.get('subscription') or {}
        gateway_id = (subscription_payload.get('entity') or subscription_payload).get('id')
        subscription = None
        if gateway_id:
            subscription = (
                self.session.query(Subscription)
                .filter(Subscription.razorpay_subscription_id == gateway_id)
                .first()
            )
        if not subscription:
            logger.warning("Gateway event %s for unknown subscription %s", event, gateway_id)
            return None

        if event == 'subscription.activated':
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.end_date = None
            self._set_active(subscription.organization_id, subscription.addon_ids, True)
        else:
            subscription.status = SubscriptionStatus.CANCELLED.value
            subscription.end_date = utcnow()
            self._set_active(subscription.organization_id, subscription.addon_ids, False)

        self.session.flush()
        logger.info("Subscription %s for organization %s is now %s",
                    subscription.razorpay_subscription_id, subscription.organization_id, subscription.status)
        return subscription
