from sqlalchemy import func

from cognicare.errors import HasDependents
from cognicare.models import Appointment, Clinic, Patient
from cognicare.utils.validation import normalize_phone, validate_length
from .base import TenantRepository


def clean_clinic_payload(data, partial=False):
    values = {}
    if not partial or 'name' in data:
        values['name'] = validate_length(data.get('name'), 'name', 2, 100)
    if not partial or 'address' in data:
        values['address'] = validate_length(data.get('address'), 'address', 10, 500)
    if not partial or 'phone' in data:
        values['phone'] = normalize_phone(data.get('phone'))
    return values


class ClinicRepository(TenantRepository):
    model = Clinic
    entity_name = 'Clinic'

    def default_order(self):
        return Clinic.created_at.asc()

    def create(self, scope, payload):
        clinic = Clinic(organization_id=scope.organization_id, **clean_clinic_payload(payload))
        self.session.add(clinic)
        self.session.flush()
        return clinic

    def update(self, scope, entity_id, payload):
        clinic = self.get(scope, entity_id)
        self.assign(clinic, clean_clinic_payload(payload, partial=True))
        self.session.flush()
        return clinic

    def delete(self, scope, entity_id):
        clinic = self.get(scope, entity_id)
        patients = dict(
            self.session.query(Patient.deleted_at.is_(None), func.count(Patient.id))
            .filter(Patient.clinic_id == clinic.id)
            .group_by(Patient.deleted_at.is_(None))
            .all()
        )
        active, archived = patients.get(True, 0), patients.get(False, 0)
        appointments = self.session.query(func.count(Appointment.id)).filter(Appointment.clinic_id == clinic.id).scalar()
        if active or archived or appointments:
            # Archived patients keep their clinic reference and history
            raise HasDependents(
                'Cannot delete clinic with existing patients (including archived) or appointments. '
                'Please transfer them first.',
                details={'patients': active, 'archived_patients': archived, 'appointments': appointments},
            )
        self.session.delete(clinic)
        self.session.flush()
        return clinic

    def counts(self, clinic_ids):
        """{clinic_id: {'patients': n, 'appointments': m}} for the given clinics."""
        result = {cid: {'patients': 0, 'appointments': 0} for cid in clinic_ids}
        if not clinic_ids:
            return result
        patient_rows = (
            self.session.query(Patient.clinic_id, func.count(Patient.id))
            .filter(Patient.clinic_id.in_(clinic_ids), Patient.deleted_at.is_(None))
            .group_by(Patient.clinic_id)
        )
        for clinic_id, count in patient_rows:
            result[clinic_id]['patients'] = count
        appointment_rows = (
            self.session.query(Appointment.clinic_id, func.count(Appointment.id))
            .filter(Appointment.clinic_id.in_(clinic_ids))
            .group_by(Appointment.clinic_id)
        )
        for clinic_id, count in appointment_rows:
            result[clinic_id]['appointments'] = count
        return result
