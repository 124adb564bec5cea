"""
Identity & session resolution.

Turns the bearer token on a request into a CallerContext once, stores it on
flask.g, and lets every downstream layer read it from there.
"""
import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Optional

from flask import g, request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from cognicare.errors import (
    EmailNotVerified,
    InvalidToken,
    NoOrganization,
    TokenExpired,
    TokenMissing,
    UserNotFound,
)
from cognicare.extensions import db
from cognicare.models import Clinic, User
from cognicare.models.enums import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    user_id: str
    email: str
    name: str
    role: str
    organization_id: Optional[str]
    specialization: Optional[str] = None
    clinics: tuple = field(default_factory=tuple)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    @property
    def is_doctor(self):
        return self.role == Role.DOCTOR

    def to_dict(self):
        return {
            'id': self.user_id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'specialization': self.specialization,
            'organization_id': self.organization_id,
            'clinics': list(self.clinics),
        }


def extract_bearer_token(header_value):
    """Return the token part of an 'Authorization: Bearer <token>' header, or None."""
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1]


def resolve_caller(token, require_organization=True):
    """
    Resolve an access token to a CallerContext.

    Raises TokenMissing, InvalidToken, TokenExpired, UserNotFound,
    EmailNotVerified or NoOrganization.
    """
    if not token:
        raise TokenMissing()

    try:
        claims = decode_token(token)
    except ExpiredSignatureError:
        raise TokenExpired()
    except (InvalidTokenError, JWTExtendedException) as e:
        logger.info("Rejected access token: %s", e)
        raise InvalidToken()

    if claims.get('type') != 'access':
        raise InvalidToken()

    user = db.session.get(User, claims.get('sub'))
    if not user:
        raise UserNotFound()
    if not user.is_email_verified:
        raise EmailNotVerified()
    if require_organization and not user.organization_id:
        raise NoOrganization()

    clinic_ids = ()
    if user.organization_id:
        clinic_ids = tuple(
            row[0] for row in db.session.query(Clinic.id)
            .filter(Clinic.organization_id == user.organization_id)
            .order_by(Clinic.created_at)
        )

    return CallerContext(
        user_id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        organization_id=user.organization_id,
        specialization=user.specialization,
        clinics=clinic_ids,
    )


def caller_required(require_organization=True):
    """
    Decorator resolving the request's bearer token into g.caller.

    Usage: @caller_required()  or  @caller_required(require_organization=False)
    for the routes that let an unaffiliated user create or join an organization.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            token = extract_bearer_token(request.headers.get('Authorization'))
            g.caller = resolve_caller(token, require_organization=require_organization)
            return f(*args, **kwargs)
        return decorated_function
    return decorator