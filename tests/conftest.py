"""Shared pytest fixtures."""
from datetime import timedelta
from types import SimpleNamespace

import pytest
from flask_jwt_extended import create_access_token

from cognicare import create_app
from cognicare.extensions import db
from cognicare.models import AddOn, Clinic, Organization, OrganizationAddOn, Patient, User
from cognicare.models.base import utcnow
from cognicare.models.enums import Role
from cognicare.seeds import seed_addons

PASSWORD = 'secret123'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_addons()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_org(app):
    def _make(name='Sunrise Health'):
        org = Organization(name=name)
        db.session.add(org)
        db.session.commit()
        return org
    return _make


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(org=None, role=Role.DOCTOR.value, verified=True, email=None, name=None):
        counter['n'] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name or f"User {counter['n']}",
            role=role,
            organization_id=org.id if org else None,
            is_email_verified=verified,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_clinic(app):
    def _make(org, name='Main Clinic'):
        clinic = Clinic(organization_id=org.id, name=name, address='12 MG Road, Bengaluru', phone='9876543210')
        db.session.add(clinic)
        db.session.commit()
        return clinic
    return _make


@pytest.fixture
def make_patient(app):
    counter = {'n': 0}

    def _make(clinic, phone=None, name=None):
        counter['n'] += 1
        patient = Patient(
            clinic_id=clinic.id,
            name=name or f"Patient {counter['n']}",
            phone=phone or f"98{counter['n']:08d}",
            allergies=[],
            chronic_conditions=[],
        )
        db.session.add(patient)
        db.session.commit()
        return patient
    return _make


@pytest.fixture
def auth_header(app):
    def _header(user, expires_delta=None):
        token = create_access_token(identity=str(user.id), expires_delta=expires_delta)
        return {'Authorization': f'Bearer {token}'}
    return _header


@pytest.fixture
def enable_addon(app):
    def _enable(org, name):
        addon = AddOn.query.filter_by(name=name).one()
        row = OrganizationAddOn(organization_id=org.id, addon_id=addon.id, is_active=True, usage_count=0)
        db.session.add(row)
        db.session.commit()
        return row
    return _enable


@pytest.fixture
def tenant(make_org, make_user, make_clinic, auth_header):
    """An organization with one clinic and an admin, two doctors and a staff member."""
    org = make_org()
    admin = make_user(org, Role.ADMIN.value, name='Asha Admin')
    doctor = make_user(org, Role.DOCTOR.value, name='Dev Doctor')
    other_doctor = make_user(org, Role.DOCTOR.value, name='Oma Doctor')
    staff = make_user(org, Role.STAFF.value, name='Sam Staff')
    clinic = make_clinic(org)
    return SimpleNamespace(
        org=org, admin=admin, doctor=doctor, other_doctor=other_doctor, staff=staff, clinic=clinic,
        admin_headers=auth_header(admin),
        doctor_headers=auth_header(doctor),
        other_doctor_headers=auth_header(other_doctor),
        staff_headers=auth_header(staff),
    )


@pytest.fixture
def other_tenant(make_org, make_user, make_clinic, make_patient, auth_header):
    """A second, unrelated organization."""
    org = make_org('Elsewhere Clinics')
    admin = make_user(org, Role.ADMIN.value)
    clinic = make_clinic(org, 'Far Clinic')
    patient = make_patient(clinic, phone='9123456780')
    return SimpleNamespace(org=org, admin=admin, clinic=clinic, patient=patient,
                           admin_headers=auth_header(admin))


def future(hours=24, minutes=0):
    """ISO timestamp on the hour, `hours` from now."""
    base = utcnow().replace(minute=0, second=0, microsecond=0)
    return (base + timedelta(hours=hours, minutes=minutes)).isoformat()
