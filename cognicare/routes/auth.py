import logging
import secrets

from flask import Blueprint, current_app, g, jsonify
from flask_jwt_extended import create_access_token
from sqlalchemy import func

from cognicare.errors import DuplicateEmail, EmailNotVerified, InvalidCredentials, ValidationError
from cognicare.extensions import db
from cognicare.models import User
from cognicare.models.base import utcnow
from cognicare.models.enums import Role, values
from cognicare.services.email_service import send_password_reset_email, send_verification_email
from cognicare.utils.audit import log_audit
from cognicare.utils.identity import caller_required
from cognicare.utils.validation import get_json_body, validate_choice, validate_email, validate_length

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128


def _validate_password(password):
    """Length check only; the password is hashed exactly as sent."""
    if not isinstance(password, str) or not password:
        raise ValidationError('password is required')
    if len(password) < MIN_PASSWORD_LENGTH or len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError(
            f'password must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH} characters'
        )
    return password


def _find_user_by_email(email):
    return User.query.filter(func.lower(User.email) == email).first()


def _issue_verification_token(user):
    user.email_verification_token = secrets.token_hex(32)
    user.email_verification_sent_at = utcnow()


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Register an account; it stays inactive until the email is verified"""
    # Step 1: Validate input
    data = get_json_body()
    email = validate_email(data.get('email'))
    password = _validate_password(data.get('password'))
    name = validate_length(data.get('name'), 'name', 2, 100)
    role = validate_choice(data.get('role') or Role.DOCTOR.value, 'role', values(Role))
    specialization = validate_length(data.get('specialization'), 'specialization', max_length=100, required=False)

    # Step 2: Reject duplicate accounts
    if _find_user_by_email(email):
        raise DuplicateEmail()

    # Step 3: Create the unverified user
    user = User(email=email, name=name, role=role, specialization=specialization)
    user.set_password(password)
    _issue_verification_token(user)
    db.session.add(user)
    db.session.commit()

    # Step 4: Send the verification link
    send_verification_email(user.email, user.name, user.email_verification_token)
    log_audit('user', 'signup', user_id=user.id, entity_id=user.id)

    return jsonify({
        'success': True,
        'message': 'Account created. Please check your email to verify your account.',
        'user': user.to_dict()
    }), 201


@auth_bp.route('/verify-email', methods=['POST'])
def verify_email():
    """Confirm an email verification token"""
    data = get_json_body()
    token = data.get('token')
    if not token:
        raise ValidationError('Verification token is required')

    user = User.query.filter_by(email_verification_token=token).first()
    if not user:
        raise ValidationError('Invalid or expired verification token', code='INVALID_TOKEN')

    sent_at = user.email_verification_sent_at or user.created_at
    if utcnow() - sent_at > current_app.config['EMAIL_VERIFICATION_TTL']:
        raise ValidationError('Invalid or expired verification token', code='TOKEN_EXPIRED')

    user.is_email_verified = True
    user.email_verification_token = None
    user.email_verification_sent_at = None
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Email verified successfully. You can now log in.'
    }), 200


@auth_bp.route('/resend-verification', methods=['POST'])
def resend_verification():
    """Re-send the verification link; the response never reveals whether the email exists"""
    data = get_json_body()
    email = validate_email(data.get('email'))

    user = _find_user_by_email(email)
    if user and not user.is_email_verified:
        _issue_verification_token(user)
        db.session.commit()
        send_verification_email(user.email, user.name, user.email_verification_token)

    return jsonify({
        'success': True,
        'message': 'If an unverified account exists for this email, a verification link has been sent.'
    }), 200


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login endpoint - authenticates a verified user and returns a JWT"""
    data = get_json_body()
    email = validate_email(data.get('email'))
    password = data.get('password')
    if not password:
        raise ValidationError('Email and password required')

    user = _find_user_by_email(email)
    if not user or not user.check_password(password):
        logger.warning("Failed login for %s", email)
        raise InvalidCredentials()

    if not user.is_email_verified:
        raise EmailNotVerified()

    user.last_login = utcnow()
    db.session.commit()

    # Identity is the user id; role and organization ride along as claims
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={
            'email': user.email,
            'role': user.role,
            'organization_id': user.organization_id,
        },
    )
    expires = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']

    return jsonify({
        'success': True,
        'token': access_token,
        'token_type': 'bearer',
        'expires_in': int(expires.total_seconds()),
        'user': user.to_dict()
    }), 200


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Email a password reset link; identical response whether or not the account exists"""
    data = get_json_body()
    email = validate_email(data.get('email'))

    user = _find_user_by_email(email)
    if user:
        user.password_reset_token = secrets.token_hex(32)
        user.password_reset_expires = utcnow() + current_app.config['PASSWORD_RESET_TTL']
        db.session.commit()
        send_password_reset_email(user.email, user.name, user.password_reset_token)
    else:
        logger.info("Password reset requested for unknown email")

    return jsonify({
        'success': True,
        'message': 'If an account exists with this email, a password reset link has been sent.'
    }), 200


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    """Consume a reset token and set a new password"""
    data = get_json_body()
    token = data.get('token')
    if not token:
        raise ValidationError('Reset token is required')
    password = _validate_password(data.get('password'))

    user = User.query.filter_by(password_reset_token=token).first()
    if not user or not user.password_reset_expires or user.password_reset_expires < utcnow():
        raise ValidationError('Invalid or expired reset token', code='INVALID_TOKEN')

    user.set_password(password)
    user.password_reset_token = None
    user.password_reset_expires = None
    db.session.commit()
    log_audit('user', 'password_reset', user_id=user.id, entity_id=user.id,
              organization_id=user.organization_id)

    return jsonify({
        'success': True,
        'message': 'Password reset successfully'
    }), 200


@auth_bp.route('/me', methods=['GET'])
@caller_required(require_organization=False)
def get_current_user():
    """Profile of the authenticated caller"""
    return jsonify({
        'success': True,
        'user': g.caller.to_dict()
    }), 200
