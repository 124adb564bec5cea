from enum import Enum


class Role(str, Enum):
    ADMIN = 'ADMIN'
    DOCTOR = 'DOCTOR'
    STAFF = 'STAFF'


class Gender(str, Enum):
    MALE = 'MALE'
    FEMALE = 'FEMALE'
    OTHER = 'OTHER'


class AppointmentStatus(str, Enum):
    SCHEDULED = 'SCHEDULED'
    CONFIRMED = 'CONFIRMED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'


# Statuses that hold a doctor's time slot
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


class SubscriptionStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    CANCELLED = 'CANCELLED'


class BackupType(str, Enum):
    LOCAL = 'LOCAL'
    CLOUD = 'CLOUD'


class BackupReason(str, Enum):
    MANUAL = 'MANUAL'
    SCHEDULED = 'SCHEDULED'
    PRE_RESTORE = 'PRE_RESTORE'


def values(enum_cls):
    return [member.value for member in enum_cls]
