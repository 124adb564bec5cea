from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat, utcnow


class EHRRecord(db.Model, TimestampMixin):
    __tablename__ = 'ehr_records'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    appointment_id = db.Column(db.String(36), db.ForeignKey('appointments.id'), nullable=True, index=True)
    visit_date = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Clinical notes
    chief_complaint = db.Column(db.String(500))
    history = db.Column(db.Text)
    examination = db.Column(db.Text)
    diagnosis = db.Column(db.Text)
    treatment = db.Column(db.Text)
    prescription = db.Column(db.Text)
    notes = db.Column(db.Text)

    # AI-derived
    transcribed_notes = db.Column(db.Text)
    ocr_notes = db.Column(db.Text)
    ai_summary = db.Column(db.Text)

    attachments = db.Column(db.JSON, default=list)

    doctor = db.relationship('User', foreign_keys=[doctor_id])

    CLINICAL_FIELDS = (
        'chief_complaint', 'history', 'examination', 'diagnosis', 'treatment',
        'prescription', 'notes', 'transcribed_notes', 'ocr_notes', 'ai_summary',
    )

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'appointment_id': self.appointment_id,
            'visit_date': isoformat(self.visit_date),
            'attachments': self.attachments or [],
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        for field in self.CLINICAL_FIELDS:
            data[field] = getattr(self, field)
        if include_relations:
            data['patient'] = {'id': self.patient.id, 'name': self.patient.name} if self.patient else None
            data['doctor'] = {'id': self.doctor.id, 'name': self.doctor.name, 'specialization': self.doctor.specialization} if self.doctor else None
        return data

    def __repr__(self):
        return f"<EHRRecord {self.id} patient={self.patient_id}>"
