"""
Role capabilities keyed by (role, action, resource).

Reads inside the caller's own organization are open to every verified
member; the table below lists the mutations and privileged reads.
"""
from enum import Enum

from cognicare.errors import PermissionDenied
from cognicare.models.enums import Role


class Action(str, Enum):
    CREATE = 'create'
    READ = 'read'
    UPDATE = 'update'
    DELETE = 'delete'
    IMPORT = 'import'
    INVITE = 'invite'
    REMOVE_MEMBER = 'remove_member'
    CANCEL = 'cancel'
    COMPLETE = 'complete'
    USE_AI = 'use_ai'
    SUBSCRIBE = 'subscribe'
    RESTORE = 'restore'


class Resource(str, Enum):
    ORGANIZATION = 'organization'
    CLINIC = 'clinic'
    PATIENT = 'patient'
    APPOINTMENT = 'appointment'
    EHR_RECORD = 'ehr_record'
    ADDON = 'addon'
    ANALYTICS = 'analytics'
    BACKUP = 'backup'


ALL_ROLES = frozenset(role.value for role in Role)
ADMIN_ONLY = frozenset({Role.ADMIN.value})
CLINICIANS = frozenset({Role.ADMIN.value, Role.DOCTOR.value})

PERMISSIONS = {
    (Resource.ORGANIZATION, Action.UPDATE): ADMIN_ONLY,
    (Resource.ORGANIZATION, Action.INVITE): ADMIN_ONLY,
    (Resource.ORGANIZATION, Action.REMOVE_MEMBER): ADMIN_ONLY,

    (Resource.CLINIC, Action.CREATE): ADMIN_ONLY,
    (Resource.CLINIC, Action.UPDATE): ADMIN_ONLY,
    (Resource.CLINIC, Action.DELETE): ADMIN_ONLY,

    (Resource.PATIENT, Action.CREATE): ALL_ROLES,
    (Resource.PATIENT, Action.UPDATE): ALL_ROLES,
    (Resource.PATIENT, Action.DELETE): ALL_ROLES,
    (Resource.PATIENT, Action.IMPORT): ALL_ROLES,

    (Resource.APPOINTMENT, Action.CREATE): CLINICIANS,
    (Resource.APPOINTMENT, Action.UPDATE): CLINICIANS,
    (Resource.APPOINTMENT, Action.CANCEL): CLINICIANS,
    (Resource.APPOINTMENT, Action.COMPLETE): CLINICIANS,

    (Resource.EHR_RECORD, Action.CREATE): CLINICIANS,
    (Resource.EHR_RECORD, Action.UPDATE): CLINICIANS,
    (Resource.EHR_RECORD, Action.USE_AI): ALL_ROLES,

    (Resource.ADDON, Action.SUBSCRIBE): ADMIN_ONLY,

    (Resource.ANALYTICS, Action.READ): ADMIN_ONLY,

    (Resource.BACKUP, Action.READ): ADMIN_ONLY,
    (Resource.BACKUP, Action.CREATE): ADMIN_ONLY,
    (Resource.BACKUP, Action.RESTORE): ADMIN_ONLY,
}


def can(role, action, resource):
    """True when `role` may perform `action` on `resource`."""
    allowed = PERMISSIONS.get((Resource(resource), Action(action)))
    if allowed is None:
        return Action(action) == Action.READ
    return role in allowed


def ensure_permitted(caller, action, resource):
    if not can(caller.role, action, resource):
        raise PermissionDenied(f"Role {caller.role} cannot {Action(action).value} {Resource(resource).value}")
