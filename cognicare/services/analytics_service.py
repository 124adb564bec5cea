"""
Analytics rollups over the tenant-scoped repositories.

All counts are computed in SQL (COUNT / GROUP BY) against scoped queries.
"""
import logging
from datetime import date, datetime, time, timedelta

from flask import request
from sqlalchemy import func

from cognicare.errors import ValidationError
from cognicare.models import Appointment, EHRRecord, Patient
from cognicare.models.base import isoformat, utcnow
from cognicare.models.enums import AppointmentStatus
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import parse_date

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 30
AGE_GROUPS = (('0-18', 0, 18), ('19-30', 19, 30), ('31-50', 31, 50), ('51-65', 51, 65), ('65+', 66, None))


def date_range_from_request():
    """(start, end) datetimes from ?start_date/&end_date, defaulting to the last 30 days."""
    end_day = parse_date(request.args.get('end_date'), 'end_date')
    start_day = parse_date(request.args.get('start_date'), 'start_date')
    end = datetime.combine(end_day, time.max) if end_day else utcnow()
    start = datetime.combine(start_day, time.min) if start_day else end - timedelta(days=DEFAULT_RANGE_DAYS)
    if start > end:
        raise ValidationError('start_date must be before end_date')
    return start, end


def _rate(part, total):
    return round(part / total * 100, 2) if total else 0.0


def _age(dob, today):
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


class AnalyticsAggregator:

    def __init__(self, session, caller):
        self.session = session
        self.caller = caller

    def _scoped(self, kind, *entities):
        return scope_for(self.caller, kind).apply(self.session.query(*entities))

    def _appointments(self, *entities, start=None, end=None):
        query = self._scoped(EntityKind.APPOINTMENT, *entities)
        if start is not None:
            query = query.filter(Appointment.appointment_date >= start, Appointment.appointment_date <= end)
        return query

    def dashboard(self, start, end):
        now = utcnow()
        month_start = datetime(now.year, now.month, 1)
        total_patients = self._scoped(EntityKind.PATIENT, func.count(Patient.id)).scalar()
        new_patients = (
            self._scoped(EntityKind.PATIENT, func.count(Patient.id))
            .filter(Patient.created_at >= month_start)
            .scalar()
        )
        total_appointments = self._appointments(func.count(Appointment.id), start=start, end=end).scalar()
        completed = (
            self._appointments(func.count(Appointment.id), start=start, end=end)
            .filter(Appointment.status == AppointmentStatus.COMPLETED.value)
            .scalar()
        )
        upcoming = (
            self._appointments(func.count(Appointment.id))
            .filter(Appointment.appointment_date >= now,
                    Appointment.status.in_((AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)))
            .scalar()
        )
        return {
            'total_patients': total_patients,
            'new_patients_this_month': new_patients,
            'total_appointments': total_appointments,
            'completed_appointments': completed,
            'upcoming_appointments': upcoming,
            'doctor_utilization': _rate(completed, total_appointments),
            'date_range': {'start': isoformat(start), 'end': isoformat(end)},
        }

    def appointments(self, start, end):
        by_status = dict(
            self._appointments(Appointment.status, func.count(Appointment.id), start=start, end=end)
            .group_by(Appointment.status)
            .all()
        )
        for status in AppointmentStatus:
            by_status.setdefault(status.value, 0)
        total = sum(by_status.values())

        by_hour = [0] * 24
        hour = func.extract('hour', Appointment.appointment_date)
        for h, count in self._appointments(hour, func.count(Appointment.id), start=start, end=end).group_by(hour):
            by_hour[int(h)] = count

        by_doctor = [
            {'doctor_id': doctor_id, 'appointments': count}
            for doctor_id, count in self._appointments(Appointment.doctor_id, func.count(Appointment.id), start=start, end=end)
            .group_by(Appointment.doctor_id)
            .order_by(func.count(Appointment.id).desc())
        ]

        return {
            'total': total,
            'by_status': by_status,
            'by_time_of_day': [{'hour': h, 'count': c} for h, c in enumerate(by_hour)],
            'by_doctor': by_doctor,
            'no_show_rate': _rate(by_status[AppointmentStatus.NO_SHOW.value], total),
            'cancellation_rate': _rate(by_status[AppointmentStatus.CANCELLED.value], total),
            'completion_rate': _rate(by_status[AppointmentStatus.COMPLETED.value], total),
            'date_range': {'start': isoformat(start), 'end': isoformat(end)},
        }

    def patients(self, start, end):
        today = utcnow().date()

        age_groups = {label: 0 for label, _, _ in AGE_GROUPS}
        age_groups['unknown'] = 0
        dob_counts = (
            self._scoped(EntityKind.PATIENT, Patient.date_of_birth, func.count(Patient.id))
            .group_by(Patient.date_of_birth)
        )
        for dob, count in dob_counts:
            if dob is None:
                age_groups['unknown'] += count
                continue
            if isinstance(dob, str):
                dob = date.fromisoformat(dob)
            age = _age(dob, today)
            for label, low, high in AGE_GROUPS:
                if age >= low and (high is None or age <= high):
                    age_groups[label] += count
                    break

        gender = {
            (g or 'UNKNOWN'): c for g, c in
            self._scoped(EntityKind.PATIENT, Patient.gender, func.count(Patient.id)).group_by(Patient.gender)
        }

        new_patients = (
            self._scoped(EntityKind.PATIENT, func.count(Patient.id))
            .filter(Patient.created_at >= start, Patient.created_at <= end)
            .scalar()
        )
        visits_per_patient = (
            self._appointments(Appointment.patient_id, func.count(Appointment.id).label('visits'), start=start, end=end)
            .group_by(Appointment.patient_id)
            .subquery()
        )
        returning = (
            self.session.query(func.count())
            .select_from(visits_per_patient)
            .filter(visits_per_patient.c.visits > 1)
            .scalar()
        )

        visit_count = func.count(Appointment.id)
        top_visitors = (
            self._appointments(Appointment.patient_id, visit_count, start=start, end=end)
            .group_by(Appointment.patient_id)
            .order_by(visit_count.desc())
            .limit(10)
            .all()
        )
        names = dict(
            self.session.query(Patient.id, Patient.name)
            .filter(Patient.id.in_([pid for pid, _ in top_visitors]))
            .all()
        ) if top_visitors else {}

        diagnosis_count = func.count(EHRRecord.id)
        top_diagnoses = (
            self._scoped(EntityKind.EHR_RECORD, EHRRecord.diagnosis, diagnosis_count)
            .filter(EHRRecord.diagnosis.isnot(None), EHRRecord.visit_date >= start, EHRRecord.visit_date <= end)
            .group_by(EHRRecord.diagnosis)
            .order_by(diagnosis_count.desc())
            .limit(10)
            .all()
        )

        return {
            'age_groups': age_groups,
            'gender_distribution': gender,
            'new_vs_returning': {'new': new_patients, 'returning': returning},
            'visit_frequency': [
                {'patient_id': pid, 'name': names.get(pid), 'visits': visits} for pid, visits in top_visitors
            ],
            'top_diagnoses': [{'diagnosis': d, 'count': c} for d, c in top_diagnoses],
            'date_range': {'start': isoformat(start), 'end': isoformat(end)},
        }
