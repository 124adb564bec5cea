"""
External service boundary: AI transcription/OCR/summaries, the payment
gateway and backup object storage.

The app talks to these only through ExternalServices. StubExternalServices
answers with canned results after fixed delays; a real deployment installs
its own implementation with init_external_services(app, services).
"""
import calendar
import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from urllib.parse import urlencode

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'cognicare.external_services'


class ExternalServices(ABC):

    @abstractmethod
    def speech_to_text(self, audio_data):
        """Return a transcript for base64 audio."""

    @abstractmethod
    def extract_text(self, image_data):
        """Return OCR text for a base64 image."""

    @abstractmethod
    def summarize(self, text):
        """Return a clinical summary of free text."""

    @abstractmethod
    def create_subscription(self, organization_id, amount, addon_ids):
        """Create a gateway subscription; returns {'id', 'short_url', 'status'}."""

    @abstractmethod
    def verify_webhook_signature(self, body, signature):
        """True when `signature` authenticates the raw webhook `body`."""

    @abstractmethod
    def upload_backup(self, organization_id, filename, content):
        """Store a backup document; returns its storage URL."""

    @abstractmethod
    def signed_download_url(self, storage_url, expires_at):
        """A time-limited download link for a stored backup."""


def sign_payload(body, secret):
    """Hex HMAC-SHA256 of a raw payload, the scheme Razorpay webhooks use."""
    if isinstance(body, str):
        body = body.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


class StubExternalServices(ExternalServices):
    """Canned responses with fixed delays, scaled by `latency` (0 disables sleeping)."""

    DELAYS = {
        'speech_to_text': 2.0,
        'extract_text': 1.5,
        'summarize': 1.0,
        'create_subscription': 1.0,
        'upload_backup': 2.0,
    }

    def __init__(self, webhook_secret, storage_url, latency=1.0):
        self.webhook_secret = webhook_secret
        self.storage_url = storage_url.rstrip('/')
        self.latency = latency

    def _wait(self, operation):
        delay = self.DELAYS[operation] * self.latency
        if delay > 0:
            time.sleep(delay)

    def speech_to_text(self, audio_data):
        self._wait('speech_to_text')
        return ("Patient reports persistent headache for 3 days, mild fever, "
                "and fatigue. No nausea or vomiting.")

    def extract_text(self, image_data):
        self._wait('extract_text')
        return ("Rx: Paracetamol 500mg - twice daily after meals for 5 days. "
                "Review after one week.")

    def summarize(self, text):
        self._wait('summarize')
        return ("Summary: Patient presents with headache and low-grade fever. "
                "Symptomatic treatment advised; follow up if symptoms persist beyond one week.")

    def create_subscription(self, organization_id, amount, addon_ids):
        self._wait('create_subscription')
        subscription_id = f"sub_{int(time.time() * 1000)}"
        return {
            'id': subscription_id,
            'status': 'created',
            'short_url': f"https://rzp.io/i/{subscription_id}",
        }

    def verify_webhook_signature(self, body, signature):
        if not signature or not self.webhook_secret:
            return False
        expected = sign_payload(body, self.webhook_secret)
        return hmac.compare_digest(expected, signature)

    def upload_backup(self, organization_id, filename, content):
        self._wait('upload_backup')
        url = f"{self.storage_url}/{organization_id}/{filename}"
        logger.info("Uploaded backup %s (%d bytes)", url, len(content))
        return url

    def signed_download_url(self, storage_url, expires_at):
        expires = calendar.timegm(expires_at.utctimetuple())
        signature = sign_payload(f"{storage_url}:{expires}", self.webhook_secret)[:32]
        return f"{storage_url}?{urlencode({'expires': expires, 'signature': signature})}"


def init_external_services(app, services=None):
    """Install the external-service implementation on the app"""
    if services is None:
        services = StubExternalServices(
            webhook_secret=app.config['RAZORPAY_WEBHOOK_SECRET'],
            storage_url=app.config['BACKUP_STORAGE_URL'],
            latency=app.config['EXTERNAL_SERVICE_LATENCY'],
        )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_external_services() -> ExternalServices:
    return current_app.extensions[EXTENSION_KEY]
