from .email_service import send_invite_email, send_password_reset_email, send_verification_email
from .external import ExternalServices, StubExternalServices, get_external_services, init_external_services

__all__ = [
    # Email Services
    "send_verification_email",
    "send_password_reset_email",
    "send_invite_email",
    # External Services
    "ExternalServices",
    "StubExternalServices",
    "get_external_services",
    "init_external_services",
]
