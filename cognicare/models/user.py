from cognicare.extensions import db, bcrypt
from .base import TimestampMixin, generate_uuid, isoformat
from .enums import Role


class User(db.Model, TimestampMixin):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=True, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    name = db.Column(db.String(100), nullable=False)
    specialization = db.Column(db.String(100))

    # ADMIN, DOCTOR or STAFF
    role = db.Column(db.String(20), nullable=False, default=Role.DOCTOR.value, index=True)

    # Email verification
    is_email_verified = db.Column(db.Boolean, default=False, nullable=False)
    email_verification_token = db.Column(db.String(64), unique=True, nullable=True)
    email_verification_sent_at = db.Column(db.DateTime, nullable=True)

    # Password reset
    password_reset_token = db.Column(db.String(64), unique=True, nullable=True)
    password_reset_expires = db.Column(db.DateTime, nullable=True)

    last_login = db.Column(db.DateTime, nullable=True)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    @property
    def is_doctor(self):
        return self.role == Role.DOCTOR

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'specialization': self.specialization,
            'organization_id': self.organization_id,
            'is_email_verified': self.is_email_verified,
            'last_login': isoformat(self.last_login),
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email} - {self.role}>"
