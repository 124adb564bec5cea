"""
Request payload helpers: field checks, phone normalization, date parsing.
"""
import re
from datetime import date, datetime, timezone

from flask import request

from cognicare.errors import ValidationError

PHONE_PATTERN = re.compile(r'^[6-9]\d{9}$')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def get_json_body():
    """Parsed JSON object body; ValidationError when it is missing or not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def require_fields(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={'missing': missing})


def normalize_phone(value, field='phone'):
    """
    Canonical 10-digit mobile number.

    Strips separators and a +91 / 91 / 0 prefix, then requires a number
    starting with 6-9.
    """
    if value is None:
        raise ValidationError(f'{field} is required')
    digits = re.sub(r'[\s\-().]', '', str(value))
    if digits.startswith('+91'):
        digits = digits[3:]
    elif len(digits) == 12 and digits.startswith('91'):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith('0'):
        digits = digits[1:]
    if not PHONE_PATTERN.match(digits):
        raise ValidationError(f'Please provide a valid 10-digit {field} number')
    return digits


def validate_email(value, field='email', required=True):
    if not value:
        if required:
            raise ValidationError(f'{field} is required')
        return None
    value = str(value).strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationError(f'Please provide a valid {field}')
    return value


def validate_length(value, field, min_length=None, max_length=None, required=True):
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} is required')
        return None
    value = str(value).strip()
    if min_length is not None and len(value) < min_length:
        raise ValidationError(f'{field} must be at least {min_length} characters')
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters')
    return value


def validate_choice(value, field, choices, required=True):
    if value in (None, ''):
        if required:
            raise ValidationError(f'{field} is required')
        return None
    value = str(value).upper()
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def validate_int(value, field, min_value=None, max_value=None, default=None):
    if value in (None, ''):
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if min_value is not None and value < min_value or max_value is not None and value > max_value:
        raise ValidationError(f'{field} must be between {min_value} and {max_value}')
    return value


def validate_string_list(value, field):
    if value in (None, ''):
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f'{field} must be a list of strings')
    return [v.strip() for v in value if v.strip()]


def parse_datetime(value, field='date'):
    """ISO-8601 datetime as naive UTC; offsets are converted, naive input is taken as UTC."""
    if value in (None, ''):
        raise ValidationError(f'{field} is required')
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f'{field} must be a valid ISO 8601 datetime')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value, field='date', required=False):
    if value in (None, ''):
        if required:
            raise ValidationError(f'{field} is required')
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a valid date (YYYY-MM-DD)')
