from flask import Blueprint, g, jsonify, request

from cognicare.errors import ValidationError
from cognicare.extensions import db
from cognicare.repositories import AppointmentRepository
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.pagination import get_page_args
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')

MAX_BULK_APPOINTMENTS = 200


def _appointment_scope():
    return scope_for(g.caller, EntityKind.APPOINTMENT)


@appointment_bp.route('', methods=['GET'])
@caller_required()
def list_appointments():
    """
    List appointments; DOCTOR callers only see their own
    Query params: page, limit, date, doctor_id, clinic_id, patient_id, status
    """
    page, limit = get_page_args()
    filters = {key: request.args.get(key) for key in ('date', 'doctor_id', 'clinic_id', 'patient_id', 'status')}

    appointments, pagination = AppointmentRepository(db.session).list(_appointment_scope(), filters, page, limit)

    return jsonify({
        'success': True,
        'appointments': [a.to_dict(include_relations=True) for a in appointments],
        'pagination': pagination
    }), 200


@appointment_bp.route('', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.APPOINTMENT)
def create_appointment():
    """Book an appointment; the doctor's calendar is locked during the overlap check"""
    data = get_json_body()
    appointment = AppointmentRepository(db.session).create(_appointment_scope(), data)
    db.session.commit()
    audit_caller(g.caller, 'appointment', 'create', appointment.id, {
        'doctor_id': appointment.doctor_id, 'patient_id': appointment.patient_id,
    })

    return jsonify({
        'success': True,
        'message': 'Appointment created successfully',
        'appointment': appointment.to_dict(include_relations=True)
    }), 201


@appointment_bp.route('/bulk-schedule', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.APPOINTMENT)
def bulk_schedule():
    data = get_json_body()
    items = data.get('appointments')
    if not isinstance(items, list) or not items:
        raise ValidationError('appointments must be a non-empty list')
    if len(items) > MAX_BULK_APPOINTMENTS:
        raise ValidationError(f'At most {MAX_BULK_APPOINTMENTS} appointments can be scheduled at once')

    created, summary = AppointmentRepository(db.session).bulk_schedule(_appointment_scope(), items)
    audit_caller(g.caller, 'appointment', 'bulk_schedule', details={
        'total': summary['total'], 'successful': summary['successful'],
    })

    return jsonify({
        'success': True,
        'message': f"Scheduled {summary['successful']} of {summary['total']} appointments",
        'summary': summary,
        'appointments': [a.to_dict() for a in created]
    }), 200


@appointment_bp.route('/<appointment_id>', methods=['GET'])
@caller_required()
def get_appointment(appointment_id):
    appointment = AppointmentRepository(db.session).get(_appointment_scope(), appointment_id)
    return jsonify({
        'success': True,
        'appointment': appointment.to_dict(include_relations=True)
    }), 200


@appointment_bp.route('/<appointment_id>', methods=['PUT'])
@caller_required()
@permission_required(Action.UPDATE, Resource.APPOINTMENT)
def update_appointment(appointment_id):
    """Update notes, time, duration, doctor or status"""
    data = get_json_body()
    appointment = AppointmentRepository(db.session).update(_appointment_scope(), appointment_id, data)
    db.session.commit()
    audit_caller(g.caller, 'appointment', 'update', appointment.id, {
        'fields': sorted(data.keys()), 'status': appointment.status,
    })

    return jsonify({
        'success': True,
        'message': 'Appointment updated successfully',
        'appointment': appointment.to_dict(include_relations=True)
    }), 200


@appointment_bp.route('/<appointment_id>', methods=['DELETE'])
@caller_required()
@permission_required(Action.CANCEL, Resource.APPOINTMENT)
def cancel_appointment(appointment_id):
    """Cancel an appointment; past or finalized appointments cannot be cancelled"""
    appointment = AppointmentRepository(db.session).cancel(_appointment_scope(), appointment_id)
    db.session.commit()
    audit_caller(g.caller, 'appointment', 'cancel', appointment.id)

    return jsonify({
        'success': True,
        'message': 'Appointment cancelled successfully',
        'appointment': appointment.to_dict()
    }), 200


@appointment_bp.route('/<appointment_id>/complete', methods=['POST'])
@caller_required()
@permission_required(Action.COMPLETE, Resource.APPOINTMENT)
def complete_appointment(appointment_id):
    """Finish an IN_PROGRESS visit and write its EHR record"""
    data = get_json_body()
    appointment = AppointmentRepository(db.session).complete(_appointment_scope(), appointment_id, data)
    db.session.commit()
    audit_caller(g.caller, 'appointment', 'complete', appointment.id)

    return jsonify({
        'success': True,
        'message': 'Appointment completed successfully',
        'appointment': appointment.to_dict(include_relations=True)
    }), 200
