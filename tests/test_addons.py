"""Add-on gating, usage metering, subscriptions and the payment webhook."""
import json

import pytest

from cognicare.extensions import db
from cognicare.models import AddOn, OrganizationAddOn, Subscription
from cognicare.services.external import sign_payload
from cognicare.services.feature_gate import ADVANCED_ANALYTICS, AI_SCRIBE

WEBHOOK_SECRET = 'testing-webhook-secret'


def post_webhook(client, event, secret=WEBHOOK_SECRET, signature=None):
    body = json.dumps(event).encode('utf-8')
    headers = {'X-Razorpay-Signature': signature or sign_payload(body, secret)}
    return client.post('/api/addons/razorpay-webhook', data=body, headers=headers,
                       content_type='application/json')


def subscription_event(name, subscription_id):
    return {'event': name, 'payload': {'subscription': {'entity': {'id': subscription_id}}}}


@pytest.fixture
def addon_ids(app):
    return {addon.name: addon.id for addon in AddOn.query.all()}


class TestAIScribeGate:

    def test_requires_addon(self, client, tenant):
        response = client.post('/api/ehr/voice-to-text', headers=tenant.doctor_headers,
                               json={'audio_data': 'UklGRg=='})
        body = response.get_json()
        assert response.status_code == 403
        assert body['code'] == 'ADDON_REQUIRED'
        assert body['details']['required_addon'] == AI_SCRIBE

    def test_usage_is_counted_per_call(self, client, tenant, enable_addon):
        enable_addon(tenant.org, AI_SCRIBE)

        first = client.post('/api/ehr/voice-to-text', headers=tenant.doctor_headers, json={'audio_data': 'UklGRg=='})
        second = client.post('/api/ehr/ocr', headers=tenant.staff_headers, json={'image_data': 'iVBORw0KGgo='})
        third = client.post('/api/ehr/ai-summary', headers=tenant.doctor_headers, json={'text': 'Fever and cough'})

        assert first.status_code == second.status_code == third.status_code == 200
        assert first.get_json()['transcription']
        assert second.get_json()['extracted_text']
        assert third.get_json()['summary']
        assert [r.get_json()['usage_count'] for r in (first, second, third)] == [1, 2, 3]

    def test_rejected_input_is_not_billed(self, client, tenant, enable_addon):
        row = enable_addon(tenant.org, AI_SCRIBE)
        response = client.post('/api/ehr/ai-summary', headers=tenant.doctor_headers, json={'text': '   '})
        assert response.status_code == 400
        assert db.session.get(OrganizationAddOn, row.id).usage_count == 0

    def test_inactive_addon_is_gated(self, client, tenant, enable_addon):
        row = enable_addon(tenant.org, AI_SCRIBE)
        row.is_active = False
        db.session.commit()

        response = client.post('/api/ehr/ocr', headers=tenant.doctor_headers, json={'image_data': 'iVBORw0KGgo='})
        assert response.status_code == 403

    def test_other_organizations_addon_does_not_count(self, client, tenant, other_tenant, enable_addon):
        enable_addon(other_tenant.org, AI_SCRIBE)
        response = client.post('/api/ehr/ocr', headers=tenant.doctor_headers, json={'image_data': 'iVBORw0KGgo='})
        assert response.status_code == 403


class TestCatalogAndSubscription:

    def test_catalog_shows_enablement(self, client, tenant, enable_addon):
        enable_addon(tenant.org, AI_SCRIBE)
        addons = client.get('/api/addons', headers=tenant.staff_headers).get_json()['addons']
        by_name = {a['name']: a for a in addons}
        assert by_name[AI_SCRIBE]['is_enabled'] is True
        assert by_name[ADVANCED_ANALYTICS]['is_enabled'] is False

    def test_subscribe_activates_addons(self, client, tenant, addon_ids):
        response = client.post('/api/addons/subscribe', headers=tenant.admin_headers,
                               json={'addon_ids': [addon_ids[AI_SCRIBE], addon_ids[ADVANCED_ANALYTICS]]})
        body = response.get_json()
        assert response.status_code == 201
        assert body['payment_link'].startswith('https://')
        assert body['subscription']['amount'] == 99900 + 49900

        enabled = client.get('/api/addons/organization', headers=tenant.admin_headers).get_json()
        assert {a['name'] for a in enabled['addons']} == {AI_SCRIBE, ADVANCED_ANALYTICS}
        assert enabled['subscription']['id'] == body['subscription']['id']

    def test_unknown_addon_id(self, client, tenant, addon_ids):
        response = client.post('/api/addons/subscribe', headers=tenant.admin_headers,
                               json={'addon_ids': [addon_ids[AI_SCRIBE], 'no-such-addon']})
        assert response.status_code == 400
        assert Subscription.query.count() == 0

    def test_only_admin_subscribes(self, client, tenant, addon_ids):
        response = client.post('/api/addons/subscribe', headers=tenant.doctor_headers,
                               json={'addon_ids': [addon_ids[AI_SCRIBE]]})
        assert response.status_code == 403


class TestWebhook:

    @pytest.fixture
    def subscription(self, client, tenant, addon_ids):
        response = client.post('/api/addons/subscribe', headers=tenant.admin_headers,
                               json={'addon_ids': [addon_ids[AI_SCRIBE]]})
        return db.session.get(Subscription, response.get_json()['subscription']['id'])

    def test_invalid_signature(self, client, subscription):
        response = post_webhook(client, subscription_event('subscription.cancelled', subscription.razorpay_subscription_id),
                                secret='wrong-secret')
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_SIGNATURE'
        db.session.refresh(subscription)
        assert subscription.status == 'ACTIVE'

    def test_missing_signature(self, client):
        response = client.post('/api/addons/razorpay-webhook', json={'event': 'subscription.activated'})
        assert response.status_code == 400

    def test_cancellation_deactivates_addons(self, client, tenant, subscription):
        response = post_webhook(client, subscription_event('subscription.cancelled',
                                                           subscription.razorpay_subscription_id))
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

        db.session.refresh(subscription)
        assert subscription.status == 'CANCELLED'
        assert subscription.end_date is not None

        ai = client.post('/api/ehr/ai-summary', headers=tenant.doctor_headers, json={'text': 'Cough'})
        assert ai.status_code == 403

    def test_activation_restores_addons(self, client, tenant, subscription):
        post_webhook(client, subscription_event('subscription.cancelled', subscription.razorpay_subscription_id))
        post_webhook(client, subscription_event('subscription.activated', subscription.razorpay_subscription_id))

        ai = client.post('/api/ehr/ai-summary', headers=tenant.doctor_headers, json={'text': 'Cough'})
        assert ai.status_code == 200

    def test_bare_subscription_payload(self, client, subscription):
        event = {'event': 'subscription.cancelled',
                 'payload': {'subscription': {'id': subscription.razorpay_subscription_id}}}
        assert post_webhook(client, event).status_code == 200

        db.session.refresh(subscription)
        assert subscription.status == 'CANCELLED'

    @pytest.mark.parametrize('event', [
        {'event': 'invoice.paid', 'payload': {}},
        {'event': 'payment.failed', 'payload': {'payment': {'entity': {'id': 'pay_1'}}}},
        subscription_event('subscription.activated', 'sub_unknown'),
    ])
    def test_unhandled_events_are_acknowledged(self, client, event):
        response = post_webhook(client, event)
        assert response.status_code == 200
