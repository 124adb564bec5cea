import logging
from datetime import datetime, time, timedelta

from cognicare.errors import (
    AlreadyFinalized,
    APIError,
    InvalidSchedule,
    InvalidTransition,
    SchedulingConflict,
    ValidationError,
)
from cognicare.models import Appointment, Clinic, EHRRecord, Patient, User
from cognicare.models.base import isoformat, utcnow
from cognicare.models.enums import ACTIVE_APPOINTMENT_STATUSES, AppointmentStatus, Role, values
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import (
    parse_date,
    parse_datetime,
    require_fields,
    validate_choice,
    validate_int,
    validate_length,
)
from .base import TenantRepository

logger = logging.getLogger(__name__)

S = AppointmentStatus

# Allowed status moves; COMPLETED and CANCELLED are terminal
TRANSITIONS = {
    S.SCHEDULED.value: {S.CONFIRMED.value, S.CANCELLED.value, S.NO_SHOW.value},
    S.CONFIRMED.value: {S.IN_PROGRESS.value, S.CANCELLED.value, S.NO_SHOW.value},
    S.NO_SHOW.value: {S.IN_PROGRESS.value},
    S.IN_PROGRESS.value: {S.COMPLETED.value},
    S.COMPLETED.value: set(),
    S.CANCELLED.value: set(),
}
FINAL_STATUSES = (S.COMPLETED.value, S.CANCELLED.value)

MIN_DURATION = 15
MAX_DURATION = 480
DEFAULT_DURATION = 30


def validate_transition(current, target):
    if current == target:
        return
    if current in FINAL_STATUSES:
        raise AlreadyFinalized()
    if target not in TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f'Cannot change appointment status from {current} to {target}',
            details={'allowed': sorted(TRANSITIONS.get(current, set()))},
        )


def ensure_future(start):
    if start <= utcnow():
        raise InvalidSchedule()


class AppointmentRepository(TenantRepository):
    model = Appointment
    entity_name = 'Appointment'

    def default_order(self):
        return Appointment.appointment_date.asc()

    def filtered(self, scope, filters):
        query = self.query(scope)
        if filters.get('date'):
            day = parse_date(filters['date'], 'date')
            start = datetime.combine(day, time.min)
            query = query.filter(Appointment.appointment_date >= start,
                                 Appointment.appointment_date < start + timedelta(days=1))
        if filters.get('doctor_id'):
            query = query.filter(Appointment.doctor_id == filters['doctor_id'])
        if filters.get('clinic_id'):
            query = query.filter(Appointment.clinic_id == filters['clinic_id'])
        if filters.get('patient_id'):
            query = query.filter(Appointment.patient_id == filters['patient_id'])
        if filters.get('status'):
            status = validate_choice(filters['status'], 'status', values(AppointmentStatus))
            query = query.filter(Appointment.status == status)
        return query

    def upcoming(self, scope, clinic_id=None, limit=10):
        query = self.query(scope).filter(
            Appointment.appointment_date >= utcnow(),
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        if clinic_id:
            query = query.filter(Appointment.clinic_id == clinic_id)
        return query.order_by(Appointment.appointment_date.asc()).limit(limit).all()

    # References

    def _ensure_patient(self, scope, patient_id):
        patient_scope = scope_for(scope.caller, EntityKind.PATIENT)
        patient = patient_scope.apply(self.session.query(Patient)).filter(Patient.id == patient_id).first()
        if not patient:
            raise ValidationError('Invalid patient selected')
        return patient

    def _ensure_clinic(self, scope, clinic_id):
        clinic = (
            self.session.query(Clinic)
            .filter(Clinic.id == clinic_id, Clinic.organization_id == scope.organization_id)
            .first()
        )
        if not clinic:
            raise ValidationError('Invalid clinic selected')
        return clinic

    def _lock_doctor(self, scope, doctor_id):
        """
        Load the doctor with a row lock; concurrent bookings for the same
        doctor queue here until this transaction ends.
        """
        doctor = (
            self.session.query(User)
            .filter(
                User.id == doctor_id,
                User.organization_id == scope.organization_id,
                User.role == Role.DOCTOR.value,
            )
            .with_for_update()
            .first()
        )
        if not doctor:
            raise ValidationError('Invalid doctor selected')
        return doctor

    def _ensure_no_conflict(self, doctor_id, start, duration, exclude_id=None):
        """
        Reject when another active booking for the doctor starts within
        [start - duration, start + duration] (inclusive on both ends), or
        started earlier and is still running at `start`.
        """
        window = timedelta(minutes=duration)
        query = self.session.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            Appointment.appointment_date >= start - timedelta(minutes=max(duration, MAX_DURATION)),
            Appointment.appointment_date <= start + window,
        )
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        conflict = next((
            existing for existing in query.order_by(Appointment.appointment_date.asc())
            if existing.appointment_date >= start - window
            or existing.appointment_date + timedelta(minutes=existing.duration) >= start
        ), None)
        if conflict:
            raise SchedulingConflict(details={
                'conflicting_appointment': {
                    'id': conflict.id,
                    'appointment_date': isoformat(conflict.appointment_date),
                    'duration': conflict.duration,
                },
            })

    # CRUD

    def create(self, scope, payload):
        caller = scope.caller
        doctor_id = payload.get('doctor_id') or (caller.user_id if caller.is_doctor else None)
        require_fields({**payload, 'doctor_id': doctor_id}, 'patient_id', 'doctor_id', 'clinic_id', 'appointment_date')

        start = parse_datetime(payload.get('appointment_date'), 'appointment_date')
        duration = validate_int(payload.get('duration'), 'duration', MIN_DURATION, MAX_DURATION, DEFAULT_DURATION)
        status = validate_choice(payload.get('status') or S.SCHEDULED.value, 'status', ACTIVE_APPOINTMENT_STATUSES)
        notes = validate_length(payload.get('notes'), 'notes', max_length=2000, required=False)

        patient = self._ensure_patient(scope, payload['patient_id'])
        clinic = self._ensure_clinic(scope, payload['clinic_id'])
        ensure_future(start)
        self._lock_doctor(scope, doctor_id)
        self._ensure_no_conflict(doctor_id, start, duration)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor_id,
            clinic_id=clinic.id,
            appointment_date=start,
            duration=duration,
            status=status,
            notes=notes,
        )
        self.session.add(appointment)
        self.session.flush()
        return appointment

    def update(self, scope, entity_id, payload):
        appointment = self.get(scope, entity_id, for_update=True)

        target_status = None
        if payload.get('status'):
            target_status = validate_choice(payload['status'], 'status', values(AppointmentStatus))
            if target_status == S.COMPLETED.value and appointment.status != S.COMPLETED.value:
                return self.complete(scope, entity_id, payload)
            if target_status == S.CANCELLED.value and appointment.status != S.CANCELLED.value:
                self._check_cancellable(appointment)
            validate_transition(appointment.status, target_status)

        reschedule = any(k in payload for k in ('appointment_date', 'duration', 'doctor_id'))
        if reschedule:
            if appointment.status in FINAL_STATUSES:
                raise AlreadyFinalized()
            start = appointment.appointment_date
            if 'appointment_date' in payload:
                start = parse_datetime(payload['appointment_date'], 'appointment_date')
                ensure_future(start)
            duration = validate_int(payload.get('duration'), 'duration', MIN_DURATION, MAX_DURATION, appointment.duration)
            doctor_id = payload.get('doctor_id') or appointment.doctor_id
            if (target_status or appointment.status) in ACTIVE_APPOINTMENT_STATUSES:
                self._lock_doctor(scope, doctor_id)
                self._ensure_no_conflict(doctor_id, start, duration, exclude_id=appointment.id)
            appointment.appointment_date = start
            appointment.duration = duration
            appointment.doctor_id = doctor_id

        if 'notes' in payload:
            appointment.notes = validate_length(payload.get('notes'), 'notes', max_length=2000, required=False)

        if target_status and target_status != appointment.status:
            appointment.status = target_status
            if target_status == S.CANCELLED.value:
                appointment.cancelled_at = utcnow()

        self.session.flush()
        return appointment

    def _check_cancellable(self, appointment):
        if appointment.status in FINAL_STATUSES:
            raise AlreadyFinalized()
        if appointment.appointment_date < utcnow():
            raise ValidationError('Cannot cancel past appointments', code='APPOINTMENT_IN_PAST')
        validate_transition(appointment.status, S.CANCELLED.value)

    def cancel(self, scope, entity_id):
        appointment = self.get(scope, entity_id, for_update=True)
        self._check_cancellable(appointment)
        appointment.status = S.CANCELLED.value
        appointment.cancelled_at = utcnow()
        self.session.flush()
        return appointment

    def delete(self, scope, entity_id):
        return self.cancel(scope, entity_id)

    def complete(self, scope, entity_id, payload):
        """
        IN_PROGRESS -> COMPLETED. Stores the outcome on the appointment and
        writes the linked EHR record in the same transaction.
        """
        appointment = self.get(scope, entity_id, for_update=True)
        validate_transition(appointment.status, S.COMPLETED.value)

        diagnosis = validate_length(payload.get('diagnosis'), 'diagnosis', max_length=5000)
        prescription = validate_length(payload.get('prescription'), 'prescription', max_length=5000)
        follow_up_date = parse_date(payload.get('follow_up_date'), 'follow_up_date')
        if follow_up_date and follow_up_date < utcnow().date():
            raise ValidationError('follow_up_date cannot be in the past')

        now = utcnow()
        appointment.status = S.COMPLETED.value
        appointment.diagnosis = diagnosis
        appointment.prescription = prescription
        appointment.follow_up_date = follow_up_date
        appointment.completed_at = now
        if 'notes' in payload:
            appointment.notes = validate_length(payload.get('notes'), 'notes', max_length=2000, required=False)

        record = EHRRecord(
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            appointment_id=appointment.id,
            visit_date=now,
            chief_complaint=validate_length(payload.get('chief_complaint'), 'chief_complaint', 5, 500, required=False),
            history=payload.get('history'),
            examination=payload.get('examination'),
            diagnosis=diagnosis,
            treatment=payload.get('treatment'),
            prescription=prescription,
            notes=payload.get('notes'),
            attachments=[],
        )
        self.session.add(record)
        self.session.flush()
        return appointment

    def bulk_schedule(self, scope, items):
        """
        Book each item independently, committing per item.

        Returns the created appointments and a summary: total, successful,
        failed, conflicts, errors.
        """
        summary = {'total': len(items), 'successful': 0, 'failed': 0, 'conflicts': 0, 'errors': []}
        created = []
        for index, item in enumerate(items):
            try:
                if not isinstance(item, dict):
                    raise ValidationError('Item must be an object')
                appointment = self.create(scope, item)
                self.session.commit()
                created.append(appointment)
                summary['successful'] += 1
            except SchedulingConflict as e:
                self.session.rollback()
                summary['conflicts'] += 1
                summary['errors'].append({'index': index, 'error': e.message, 'code': e.code})
            except APIError as e:
                self.session.rollback()
                summary['failed'] += 1
                summary['errors'].append({'index': index, 'error': e.message, 'code': e.code})
        logger.info("Bulk schedule for organization %s: %s/%s booked",
                    scope.organization_id, summary['successful'], summary['total'])
        return created, summary
