import logging

from sqlalchemy import or_

from cognicare.errors import APIError, DuplicatePatient, HasDependents, ValidationError
from cognicare.models import Appointment, Clinic, Patient
from cognicare.models.base import utcnow
from cognicare.models.enums import ACTIVE_APPOINTMENT_STATUSES, Gender, values
from cognicare.utils.validation import (
    normalize_phone,
    parse_date,
    validate_choice,
    validate_email,
    validate_length,
    validate_string_list,
)
from .base import TenantRepository

logger = logging.getLogger(__name__)

BLOOD_GROUPS = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')


def clean_patient_payload(data, partial=False):
    """Validate and normalize patient fields; partial=True only touches keys present."""
    values_ = {}

    def wanted(key):
        return not partial or key in data

    if wanted('name'):
        values_['name'] = validate_length(data.get('name'), 'name', 2, 100)
    if wanted('phone'):
        values_['phone'] = normalize_phone(data.get('phone'))
    if wanted('clinic_id'):
        if not data.get('clinic_id'):
            raise ValidationError('clinic_id is required')
        values_['clinic_id'] = data['clinic_id']
    if 'email' in data:
        values_['email'] = validate_email(data.get('email'), required=False)
    if 'date_of_birth' in data:
        dob = parse_date(data.get('date_of_birth'), 'date_of_birth')
        if dob and dob > utcnow().date():
            raise ValidationError('date_of_birth cannot be in the future')
        values_['date_of_birth'] = dob
    if 'gender' in data:
        values_['gender'] = validate_choice(data.get('gender'), 'gender', values(Gender), required=False)
    if 'address' in data:
        values_['address'] = validate_length(data.get('address'), 'address', max_length=500, required=False)
    if 'emergency_contact' in data:
        contact = data.get('emergency_contact')
        values_['emergency_contact'] = normalize_phone(contact, 'emergency_contact') if contact else None
    if 'blood_group' in data:
        values_['blood_group'] = validate_choice(data.get('blood_group'), 'blood_group', BLOOD_GROUPS, required=False)
    if 'allergies' in data:
        values_['allergies'] = validate_string_list(data.get('allergies'), 'allergies')
    if 'chronic_conditions' in data:
        values_['chronic_conditions'] = validate_string_list(data.get('chronic_conditions'), 'chronic_conditions')
    return values_


class PatientRepository(TenantRepository):
    model = Patient
    entity_name = 'Patient'

    def filtered(self, scope, filters):
        query = self.query(scope)
        search = (filters.get('search') or '').strip()
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(
                Patient.name.ilike(pattern),
                Patient.phone.ilike(pattern),
                Patient.email.ilike(pattern),
            ))
        if filters.get('phone'):
            query = query.filter(Patient.phone.contains(filters['phone']))
        if filters.get('clinic_id'):
            query = query.filter(Patient.clinic_id == filters['clinic_id'])
        return query

    def find_by_phone(self, scope, phone):
        return self.query(scope).filter(Patient.phone == normalize_phone(phone)).first()

    def _ensure_clinic(self, scope, clinic_id):
        clinic = (
            self.session.query(Clinic)
            .filter(Clinic.id == clinic_id, Clinic.organization_id == scope.organization_id)
            .first()
        )
        if not clinic:
            raise ValidationError('Invalid clinic selected')
        return clinic

    def _ensure_unique_phone(self, scope, phone, exclude_id=None):
        query = self.query(scope).filter(Patient.phone == phone)
        if exclude_id:
            query = query.filter(Patient.id != exclude_id)
        existing = query.first()
        if existing:
            raise DuplicatePatient(details={'existing_patient': {'id': existing.id, 'name': existing.name}})

    def create(self, scope, payload):
        values_ = clean_patient_payload(payload)
        self._ensure_clinic(scope, values_['clinic_id'])
        self._ensure_unique_phone(scope, values_['phone'])
        values_.setdefault('allergies', [])
        values_.setdefault('chronic_conditions', [])
        patient = Patient(**values_)
        self.session.add(patient)
        self.session.flush()
        return patient

    def update(self, scope, entity_id, payload):
        patient = self.get(scope, entity_id)
        values_ = clean_patient_payload(payload, partial=True)
        if 'clinic_id' in values_:
            self._ensure_clinic(scope, values_['clinic_id'])
        if 'phone' in values_:
            self._ensure_unique_phone(scope, values_['phone'], exclude_id=patient.id)
        self.assign(patient, values_)
        self.session.flush()
        return patient

    def delete(self, scope, entity_id):
        """Archive the patient; refused while future bookings are pending."""
        patient = self.get(scope, entity_id)
        upcoming = (
            self.session.query(Appointment.id)
            .filter(
                Appointment.patient_id == patient.id,
                Appointment.appointment_date >= utcnow(),
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .count()
        )
        if upcoming:
            raise HasDependents(
                'Cannot delete patient with upcoming appointments. Please cancel them first.',
                details={'upcoming_appointments': upcoming},
            )
        patient.deleted_at = utcnow()
        self.session.flush()
        return patient

    def bulk_import(self, scope, rows):
        """
        Create each row independently, committing per row.

        Returns the import summary: total, successful, failed, duplicates, errors.
        """
        summary = {'total': len(rows), 'successful': 0, 'failed': 0, 'duplicates': 0, 'errors': []}
        created = []
        for index, row in enumerate(rows):
            try:
                if not isinstance(row, dict):
                    raise ValidationError('Row must be an object')
                patient = self.create(scope, row)
                self.session.commit()
                created.append(patient)
                summary['successful'] += 1
            except DuplicatePatient as e:
                self.session.rollback()
                summary['duplicates'] += 1
                summary['errors'].append({'row': index + 1, 'phone': row.get('phone'), 'error': e.message})
            except APIError as e:
                self.session.rollback()
                summary['failed'] += 1
                summary['errors'].append({
                    'row': index + 1,
                    'phone': row.get('phone') if isinstance(row, dict) else None,
                    'error': e.message,
                })
        logger.info("Bulk import for organization %s: %s/%s imported",
                    scope.organization_id, summary['successful'], summary['total'])
        return created, summary
