"""
API error taxonomy and the Flask handlers that serialize it.

Services and repositories raise these; the handlers registered in
create_app() turn them into {"success": false, "error": ..., "code": ...}.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code = 500
    code = 'INTERNAL_ERROR'
    message = 'Internal server error'

    def __init__(self, message=None, code=None, details=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code
        self.details = details

    def to_dict(self):
        body = {'success': False, 'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


# 400
class ValidationError(APIError):
    status_code = 400
    code = 'VALIDATION_ERROR'
    message = 'Invalid request'


class InvalidSchedule(ValidationError):
    code = 'INVALID_SCHEDULE'
    message = 'Appointment time must be in the future'


class InvalidTransition(ValidationError):
    code = 'INVALID_STATUS_TRANSITION'
    message = 'Invalid appointment status transition'


class InvalidInvite(ValidationError):
    code = 'INVALID_INVITE'
    message = 'Invalid invite link'


class InviteExpired(ValidationError):
    code = 'INVITE_EXPIRED'
    message = 'This invite has expired'


class InvalidSignature(ValidationError):
    code = 'INVALID_SIGNATURE'
    message = 'Invalid webhook signature'


# 401
class AuthError(APIError):
    status_code = 401
    code = 'AUTH_REQUIRED'
    message = 'Authentication required'


class TokenMissing(AuthError):
    code = 'TOKEN_MISSING'
    message = 'Access token required'


class InvalidToken(AuthError):
    code = 'INVALID_TOKEN'
    message = 'Invalid token'


class TokenExpired(AuthError):
    code = 'TOKEN_EXPIRED'
    message = 'Token expired'


class UserNotFound(AuthError):
    code = 'USER_NOT_FOUND'
    message = 'User not found'


class EmailNotVerified(AuthError):
    code = 'EMAIL_NOT_VERIFIED'
    message = 'Please verify your email before logging in'


class InvalidCredentials(AuthError):
    code = 'INVALID_CREDENTIALS'
    message = 'Invalid email or password'


class NoOrganization(AuthError):
    status_code = 403
    code = 'NO_ORGANIZATION'
    message = 'User must belong to an organization'


# 403
class AuthorizationError(APIError):
    status_code = 403
    code = 'FORBIDDEN'
    message = 'You do not have permission to perform this action'


class PermissionDenied(AuthorizationError):
    code = 'PERMISSION_DENIED'


class AddOnRequired(AuthorizationError):
    code = 'ADDON_REQUIRED'

    def __init__(self, addon_name, message=None):
        super().__init__(message or f"{addon_name} add-on required")
        self.details = {'required_addon': addon_name}


# 404
class NotFound(APIError):
    status_code = 404
    code = 'NOT_FOUND'
    message = 'Not found'


# 409
class Conflict(APIError):
    status_code = 409
    code = 'CONFLICT'
    message = 'Conflict'


class DuplicatePatient(Conflict):
    code = 'DUPLICATE_PATIENT'
    message = 'Patient with this phone number already exists'


class SchedulingConflict(Conflict):
    code = 'SCHEDULING_CONFLICT'
    message = 'Doctor has another appointment at this time'


class LastAdminProtected(Conflict):
    code = 'LAST_ADMIN'
    message = 'Cannot remove the last admin'


class HasDependents(Conflict):
    code = 'HAS_DEPENDENTS'


class AlreadyFinalized(Conflict):
    code = 'ALREADY_FINALIZED'
    message = 'Appointment is already completed or cancelled'


class AlreadyInOrganization(Conflict):
    code = 'ALREADY_IN_ORGANIZATION'
    message = 'User already belongs to an organization'


class InviteConsumed(Conflict):
    code = 'INVITE_CONSUMED'
    message = 'This invite has already been used'


class DuplicateEmail(Conflict):
    code = 'DUPLICATE_EMAIL'
    message = 'User with this email already exists'


class PendingInvite(Conflict):
    code = 'PENDING_INVITE'
    message = 'An active invite already exists for this email'


# 429
class RateLimited(APIError):
    status_code = 429
    code = 'RATE_LIMITED'
    message = 'Too many requests'


def register_error_handlers(app):
    """Install JSON error handlers on the app"""
    from cognicare.extensions import db

    @app.errorhandler(APIError)
    def handle_api_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            logger.error("API error: %s", error.message, exc_info=True)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found',
            'code': 'NOT_FOUND'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed',
            'code': 'METHOD_NOT_ALLOWED'
        }), 405

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'error': e.description,
                'code': e.name.upper().replace(' ', '_')
            }), e.code
        db.session.rollback()
        logger.error("Unhandled exception: %s", e, exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Internal server error',
            'code': 'INTERNAL_ERROR'
        }), 500
