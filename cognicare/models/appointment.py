from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat
from .enums import AppointmentStatus


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    clinic_id = db.Column(db.String(36), db.ForeignKey('clinics.id'), nullable=False, index=True)

    appointment_date = db.Column(db.DateTime, nullable=False, index=True)  # UTC start
    duration = db.Column(db.Integer, nullable=False, default=30)  # minutes
    notes = db.Column(db.Text)

    # SCHEDULED, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED, NO_SHOW
    status = db.Column(db.String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value, index=True)

    # Outcome, filled on completion
    diagnosis = db.Column(db.Text)
    prescription = db.Column(db.Text)
    follow_up_date = db.Column(db.Date)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)

    doctor = db.relationship('User', foreign_keys=[doctor_id])

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'clinic_id': self.clinic_id,
            'appointment_date': isoformat(self.appointment_date),
            'duration': self.duration,
            'notes': self.notes,
            'status': self.status,
            'diagnosis': self.diagnosis,
            'prescription': self.prescription,
            'follow_up_date': isoformat(self.follow_up_date),
            'completed_at': isoformat(self.completed_at),
            'cancelled_at': isoformat(self.cancelled_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if include_relations:
            data['patient'] = {'id': self.patient.id, 'name': self.patient.name, 'phone': self.patient.phone} if self.patient else None
            data['doctor'] = {'id': self.doctor.id, 'name': self.doctor.name, 'specialization': self.doctor.specialization} if self.doctor else None
            data['clinic'] = {'id': self.clinic.id, 'name': self.clinic.name} if self.clinic else None
        return data

    def __repr__(self):
        return f"<Appointment {self.id} {self.appointment_date} - {self.status}>"
