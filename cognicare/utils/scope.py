"""
Tenant scope resolution.

scope_for() is the one place that knows how each entity kind reaches its
organization. Repositories apply the returned predicate to their queries
before any row is read or mutated.
"""
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import false, select, true

from cognicare.models import (
    AddOn,
    Appointment,
    Backup,
    Clinic,
    EHRRecord,
    Invite,
    Organization,
    OrganizationAddOn,
    Patient,
    Subscription,
    User,
)
from cognicare.utils.identity import CallerContext


class EntityKind(str, Enum):
    ORGANIZATION = 'organization'
    USER = 'user'
    CLINIC = 'clinic'
    PATIENT = 'patient'
    APPOINTMENT = 'appointment'
    EHR_RECORD = 'ehr_record'
    ADDON = 'addon'
    ORGANIZATION_ADDON = 'organization_addon'
    SUBSCRIPTION = 'subscription'
    INVITE = 'invite'
    BACKUP = 'backup'


@dataclass(frozen=True)
class ScopePredicate:
    """Filter clauses restricting a query to one caller's tenant."""
    caller: CallerContext
    kind: EntityKind
    clauses: tuple

    @property
    def organization_id(self):
        return self.caller.organization_id

    def apply(self, query):
        return query.filter(*self.clauses)


def organization_clinic_ids(organization_id):
    return select(Clinic.id).where(Clinic.organization_id == organization_id)


def organization_patient_ids(organization_id):
    return select(Patient.id).where(
        Patient.clinic_id.in_(organization_clinic_ids(organization_id)),
        Patient.deleted_at.is_(None),
    )


def scope_for(caller: CallerContext, kind: EntityKind) -> ScopePredicate:
    org_id = caller.organization_id
    kind = EntityKind(kind)

    if kind == EntityKind.ADDON:
        clauses = (AddOn.is_available == true(),)
    elif org_id is None:
        # An unaffiliated caller owns no tenant data
        clauses = (false(),)
    elif kind == EntityKind.ORGANIZATION:
        clauses = (Organization.id == org_id,)
    elif kind == EntityKind.USER:
        clauses = (User.organization_id == org_id,)
    elif kind == EntityKind.CLINIC:
        clauses = (Clinic.organization_id == org_id,)
    elif kind == EntityKind.PATIENT:
        clauses = (
            Patient.clinic_id.in_(organization_clinic_ids(org_id)),
            Patient.deleted_at.is_(None),
        )
    elif kind == EntityKind.APPOINTMENT:
        clauses = (
            Appointment.clinic_id.in_(organization_clinic_ids(org_id)),
            Appointment.patient_id.in_(organization_patient_ids(org_id)),
        )
        if caller.is_doctor:
            clauses += (Appointment.doctor_id == caller.user_id,)
    elif kind == EntityKind.EHR_RECORD:
        clauses = (EHRRecord.patient_id.in_(organization_patient_ids(org_id)),)
        if caller.is_doctor:
            clauses += (EHRRecord.doctor_id == caller.user_id,)
    elif kind == EntityKind.ORGANIZATION_ADDON:
        clauses = (OrganizationAddOn.organization_id == org_id,)
    elif kind == EntityKind.SUBSCRIPTION:
        clauses = (Subscription.organization_id == org_id,)
    elif kind == EntityKind.INVITE:
        clauses = (Invite.organization_id == org_id,)
    elif kind == EntityKind.BACKUP:
        clauses = (Backup.organization_id == org_id,)
    else:
        raise ValueError(f"No tenant scope defined for {kind}")

    return ScopePredicate(caller=caller, kind=kind, clauses=clauses)
