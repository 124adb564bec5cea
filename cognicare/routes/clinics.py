from flask import Blueprint, g, jsonify

from cognicare.extensions import db
from cognicare.models import Patient
from cognicare.repositories import AppointmentRepository, ClinicRepository
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

clinic_bp = Blueprint('clinic', __name__, url_prefix='/api/clinics')

RECENT_PATIENTS = 10
UPCOMING_APPOINTMENTS = 10


@clinic_bp.route('', methods=['GET'])
@caller_required()
def list_clinics():
    """All clinics of the organization with patient and appointment counts"""
    repo = ClinicRepository(db.session)
    clinics = repo.query(scope_for(g.caller, EntityKind.CLINIC)).order_by(repo.default_order()).all()
    counts = repo.counts([c.id for c in clinics])

    return jsonify({
        'success': True,
        'clinics': [dict(c.to_dict(), counts=counts[c.id]) for c in clinics]
    }), 200


@clinic_bp.route('', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.CLINIC)
def create_clinic():
    data = get_json_body()
    clinic = ClinicRepository(db.session).create(scope_for(g.caller, EntityKind.CLINIC), data)
    db.session.commit()
    audit_caller(g.caller, 'clinic', 'create', clinic.id, {'name': clinic.name})

    return jsonify({
        'success': True,
        'message': 'Clinic created successfully',
        'clinic': clinic.to_dict()
    }), 201


@clinic_bp.route('/<clinic_id>', methods=['GET'])
@caller_required()
def get_clinic(clinic_id):
    """Clinic with its most recent patients and next upcoming appointments"""
    # Step 1: Load clinic in scope
    clinic = ClinicRepository(db.session).get(scope_for(g.caller, EntityKind.CLINIC), clinic_id)

    # Step 2: Recent patients of this clinic
    patients = (
        scope_for(g.caller, EntityKind.PATIENT)
        .apply(db.session.query(Patient))
        .filter(Patient.clinic_id == clinic.id)
        .order_by(Patient.created_at.desc())
        .limit(RECENT_PATIENTS)
        .all()
    )

    # Step 3: Upcoming bookings (doctor-scoped for DOCTOR callers)
    appointments = AppointmentRepository(db.session).upcoming(
        scope_for(g.caller, EntityKind.APPOINTMENT), clinic_id=clinic.id, limit=UPCOMING_APPOINTMENTS
    )

    return jsonify({
        'success': True,
        'clinic': dict(
            clinic.to_dict(),
            patients=[p.to_dict() for p in patients],
            appointments=[a.to_dict(include_relations=True) for a in appointments],
        )
    }), 200


@clinic_bp.route('/<clinic_id>', methods=['PUT'])
@caller_required()
@permission_required(Action.UPDATE, Resource.CLINIC)
def update_clinic(clinic_id):
    data = get_json_body()
    clinic = ClinicRepository(db.session).update(scope_for(g.caller, EntityKind.CLINIC), clinic_id, data)
    db.session.commit()
    audit_caller(g.caller, 'clinic', 'update', clinic.id, {'fields': sorted(data.keys())})

    return jsonify({
        'success': True,
        'message': 'Clinic updated successfully',
        'clinic': clinic.to_dict()
    }), 200


@clinic_bp.route('/<clinic_id>', methods=['DELETE'])
@caller_required()
@permission_required(Action.DELETE, Resource.CLINIC)
def delete_clinic(clinic_id):
    """Delete a clinic; refused while patients or appointments reference it"""
    clinic = ClinicRepository(db.session).delete(scope_for(g.caller, EntityKind.CLINIC), clinic_id)
    name = clinic.name
    db.session.commit()
    audit_caller(g.caller, 'clinic', 'delete', clinic_id, {'name': name})

    return jsonify({
        'success': True,
        'message': 'Clinic deleted successfully'
    }), 200
