import logging

from flask import Blueprint, g, jsonify, request

from cognicare.errors import InvalidSignature, ValidationError
from cognicare.extensions import db
from cognicare.repositories import AddOnRepository
from cognicare.services.external import get_external_services
from cognicare.utils.audit import audit_caller, log_audit
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

logger = logging.getLogger(__name__)

addon_bp = Blueprint('addon', __name__, url_prefix='/api/addons')

SIGNATURE_HEADER = 'X-Razorpay-Signature'


def _addon_scope():
    return scope_for(g.caller, EntityKind.ORGANIZATION_ADDON)


@addon_bp.route('', methods=['GET'])
@caller_required()
def list_addons():
    """Add-on catalog with enablement and usage for the caller's organization"""
    addons = AddOnRepository(db.session).catalog(_addon_scope())
    return jsonify({
        'success': True,
        'addons': addons
    }), 200


@addon_bp.route('/organization', methods=['GET'])
@caller_required()
def organization_addons():
    repo = AddOnRepository(db.session)
    enabled = repo.enabled(_addon_scope())
    subscription = repo.current_subscription(_addon_scope())
    return jsonify({
        'success': True,
        'addons': [a.to_dict() for a in enabled],
        'subscription': subscription.to_dict() if subscription else None
    }), 200


@addon_bp.route('/subscribe', methods=['POST'])
@caller_required()
@permission_required(Action.SUBSCRIBE, Resource.ADDON)
def subscribe():
    """Subscribe the organization to add-ons (ADMIN)"""
    data = get_json_body()
    subscription = AddOnRepository(db.session).subscribe(
        _addon_scope(), data.get('addon_ids'), get_external_services()
    )
    db.session.commit()

    logger.info("Organization %s subscribed to %s", g.caller.organization_id, subscription.addon_ids)
    audit_caller(g.caller, 'subscription', 'subscribe', subscription.id, {
        'addon_ids': subscription.addon_ids, 'amount': subscription.amount,
    })

    return jsonify({
        'success': True,
        'message': 'Subscription created successfully',
        'subscription': subscription.to_dict(),
        'payment_link': subscription.payment_link
    }), 201


@addon_bp.route('/razorpay-webhook', methods=['POST'])
def razorpay_webhook():
    """
    Payment gateway callback. Unauthenticated; trusted only after the
    HMAC signature over the raw body checks out.
    """
    # Step 1: Verify signature against the raw body
    body = request.get_data()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not get_external_services().verify_webhook_signature(body, signature):
        logger.warning("Rejected webhook with invalid signature from %s", request.remote_addr)
        raise InvalidSignature()

    # Step 2: Parse the event
    event = request.get_json(silent=True)
    if not isinstance(event, dict) or not event.get('event'):
        raise ValidationError('Invalid webhook payload')

    # Step 3: Apply it
    subscription = AddOnRepository(db.session).apply_gateway_event(event['event'], event.get('payload') or {})
    db.session.commit()

    if subscription:
        log_audit('subscription', event['event'], entity_id=subscription.id,
                  organization_id=subscription.organization_id)

    return jsonify({'status': 'ok'}), 200
