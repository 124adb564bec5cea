from cognicare.extensions import db
from .base import TimestampMixin, generate_uuid, isoformat


class Patient(db.Model, TimestampMixin):
    __tablename__ = 'patients'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    clinic_id = db.Column(db.String(36), db.ForeignKey('clinics.id'), nullable=False, index=True)

    # Personal
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(10), nullable=False, index=True)  # canonical 10 digits, unique per organization
    email = db.Column(db.String(120))
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(10))  # MALE, FEMALE, OTHER
    address = db.Column(db.String(500))
    emergency_contact = db.Column(db.String(20))

    # Medical
    blood_group = db.Column(db.String(5))
    allergies = db.Column(db.JSON, default=list)
    chronic_conditions = db.Column(db.JSON, default=list)

    # Archived patients keep their medical records but leave every scope
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    # Relationships
    appointments = db.relationship('Appointment', backref='patient', lazy='dynamic')
    ehr_records = db.relationship('EHRRecord', backref='patient', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_id': self.clinic_id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'date_of_birth': isoformat(self.date_of_birth),
            'gender': self.gender,
            'address': self.address,
            'emergency_contact': self.emergency_contact,
            'blood_group': self.blood_group,
            'allergies': self.allergies or [],
            'chronic_conditions': self.chronic_conditions or [],
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Patient {self.name} ({self.id})>"
