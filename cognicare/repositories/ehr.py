from cognicare.errors import NotFound, PermissionDenied, ValidationError
from cognicare.models import Appointment, EHRRecord, Patient
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import validate_length
from .base import TenantRepository

FREE_TEXT_FIELDS = (
    'history', 'examination', 'diagnosis', 'treatment', 'prescription',
    'notes', 'transcribed_notes', 'ocr_notes', 'ai_summary',
)


def clean_ehr_payload(data, partial=False):
    values = {}
    if not partial or 'chief_complaint' in data:
        values['chief_complaint'] = validate_length(data.get('chief_complaint'), 'chief_complaint', 5, 500)
    for field in FREE_TEXT_FIELDS:
        if field in data:
            values[field] = validate_length(data.get(field), field, max_length=10000, required=False)
    if 'attachments' in data:
        attachments = data.get('attachments') or []
        if not isinstance(attachments, list):
            raise ValidationError('attachments must be a list')
        values['attachments'] = attachments
    return values


class EHRRepository(TenantRepository):
    model = EHRRecord
    entity_name = 'EHR record'

    def default_order(self):
        return EHRRecord.visit_date.desc()

    def filtered(self, scope, filters):
        query = self.query(scope)
        if filters.get('patient_id'):
            query = query.filter(EHRRecord.patient_id == filters['patient_id'])
        return query

    def _ensure_patient(self, scope, patient_id):
        patient = (
            scope_for(scope.caller, EntityKind.PATIENT)
            .apply(self.session.query(Patient))
            .filter(Patient.id == patient_id)
            .first()
        )
        if not patient:
            raise NotFound('Patient not found')
        return patient

    def for_patient(self, scope, patient_id):
        self._ensure_patient(scope, patient_id)
        return self.filtered(scope, {'patient_id': patient_id}).order_by(self.default_order()).all()

    def create(self, scope, payload):
        if not payload.get('patient_id'):
            raise ValidationError('patient_id is required')
        patient = self._ensure_patient(scope, payload['patient_id'])
        values = clean_ehr_payload(payload)
        values.setdefault('attachments', [])

        appointment_id = payload.get('appointment_id')
        if appointment_id:
            appointment = (
                scope_for(scope.caller, EntityKind.APPOINTMENT)
                .apply(self.session.query(Appointment))
                .filter(Appointment.id == appointment_id, Appointment.patient_id == patient.id)
                .first()
            )
            if not appointment:
                raise ValidationError('Invalid appointment selected')

        record = EHRRecord(
            patient_id=patient.id,
            doctor_id=scope.caller.user_id,
            appointment_id=appointment_id,
            **values,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def update(self, scope, entity_id, payload):
        record = self.get(scope, entity_id)
        caller = scope.caller
        if record.doctor_id != caller.user_id and not caller.is_admin:
            raise PermissionDenied('Only the authoring doctor or an admin can edit this record')
        self.assign(record, clean_ehr_payload(payload, partial=True))
        self.session.flush()
        return record
