from flask import Blueprint, g, jsonify, request

from cognicare.errors import ValidationError
from cognicare.extensions import db
from cognicare.models import Appointment, EHRRecord
from cognicare.repositories import PatientRepository
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.pagination import get_page_args
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

patient_bp = Blueprint('patient', __name__, url_prefix='/api/patients')

MAX_IMPORT_ROWS = 1000


def _patient_scope():
    return scope_for(g.caller, EntityKind.PATIENT)


@patient_bp.route('', methods=['GET'])
@caller_required()
def list_patients():
    """
    List patients with pagination and search
    Query params: page, limit, search, phone, clinic_id
    """
    # Step 1: Get query parameters
    page, limit = get_page_args()
    filters = {
        'search': request.args.get('search', '', type=str),
        'phone': request.args.get('phone'),
        'clinic_id': request.args.get('clinic_id'),
    }

    # Step 2: Scoped, filtered page
    patients, pagination = PatientRepository(db.session).list(_patient_scope(), filters, page, limit)

    return jsonify({
        'success': True,
        'patients': [p.to_dict() for p in patients],
        'pagination': pagination
    }), 200


@patient_bp.route('/search-by-phone', methods=['GET'])
@caller_required()
def search_by_phone():
    """Look a patient up by phone; returns {found, patient} with recent appointments"""
    phone = request.args.get('phone')
    if not phone:
        raise ValidationError('phone is required')

    patient = PatientRepository(db.session).find_by_phone(_patient_scope(), phone)
    if not patient:
        return jsonify({
            'success': True,
            'found': False,
            'patient': None
        }), 200

    recent = (
        scope_for(g.caller, EntityKind.APPOINTMENT)
        .apply(db.session.query(Appointment))
        .filter(Appointment.patient_id == patient.id)
        .order_by(Appointment.appointment_date.desc())
        .limit(5)
        .all()
    )
    return jsonify({
        'success': True,
        'found': True,
        'patient': dict(patient.to_dict(), appointments=[a.to_dict() for a in recent])
    }), 200


@patient_bp.route('/bulk-import', methods=['POST'])
@caller_required()
@permission_required(Action.IMPORT, Resource.PATIENT)
def bulk_import():
    """Import many patients; each row succeeds or fails on its own"""
    data = get_json_body()
    rows = data.get('patients')
    if not isinstance(rows, list) or not rows:
        raise ValidationError('patients must be a non-empty list')
    if len(rows) > MAX_IMPORT_ROWS:
        raise ValidationError(f'At most {MAX_IMPORT_ROWS} patients can be imported at once')

    created, summary = PatientRepository(db.session).bulk_import(_patient_scope(), rows)
    audit_caller(g.caller, 'patient', 'bulk_import', details={
        'total': summary['total'], 'successful': summary['successful'],
    })

    return jsonify({
        'success': True,
        'message': f"Imported {summary['successful']} of {summary['total']} patients",
        'import_summary': summary,
        'patients': [p.to_dict() for p in created]
    }), 200


@patient_bp.route('', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.PATIENT)
def create_patient():
    data = get_json_body()
    patient = PatientRepository(db.session).create(_patient_scope(), data)
    db.session.commit()
    audit_caller(g.caller, 'patient', 'create', patient.id, {'name': patient.name})

    return jsonify({
        'success': True,
        'message': 'Patient created successfully',
        'patient': patient.to_dict()
    }), 201


@patient_bp.route('/<patient_id>', methods=['GET'])
@caller_required()
def get_patient(patient_id):
    """Patient with appointments and EHR records (doctor-scoped for DOCTOR callers)"""
    # Step 1: Find patient in scope
    patient = PatientRepository(db.session).get(_patient_scope(), patient_id)

    # Step 2: Related records through their own scopes
    appointments = (
        scope_for(g.caller, EntityKind.APPOINTMENT)
        .apply(db.session.query(Appointment))
        .filter(Appointment.patient_id == patient.id)
        .order_by(Appointment.appointment_date.desc())
        .all()
    )
    records = (
        scope_for(g.caller, EntityKind.EHR_RECORD)
        .apply(db.session.query(EHRRecord))
        .filter(EHRRecord.patient_id == patient.id)
        .order_by(EHRRecord.visit_date.desc())
        .all()
    )

    return jsonify({
        'success': True,
        'patient': dict(
            patient.to_dict(),
            appointments=[a.to_dict(include_relations=True) for a in appointments],
            ehr_records=[r.to_dict(include_relations=True) for r in records],
        )
    }), 200


@patient_bp.route('/<patient_id>', methods=['PUT'])
@caller_required()
@permission_required(Action.UPDATE, Resource.PATIENT)
def update_patient(patient_id):
    data = get_json_body()
    patient = PatientRepository(db.session).update(_patient_scope(), patient_id, data)
    db.session.commit()
    audit_caller(g.caller, 'patient', 'update', patient.id, {'fields': sorted(data.keys())})

    return jsonify({
        'success': True,
        'message': 'Patient updated successfully',
        'patient': patient.to_dict()
    }), 200


@patient_bp.route('/<patient_id>', methods=['DELETE'])
@caller_required()
@permission_required(Action.DELETE, Resource.PATIENT)
def delete_patient(patient_id):
    """Archive a patient; medical records are preserved"""
    patient = PatientRepository(db.session).delete(_patient_scope(), patient_id)
    db.session.commit()
    audit_caller(g.caller, 'patient', 'archive', patient.id)

    return jsonify({
        'success': True,
        'message': 'Patient deleted successfully'
    }), 200
