import logging

from flask import Blueprint, g, jsonify, request

from cognicare.errors import ValidationError
from cognicare.extensions import db
from cognicare.repositories import AddOnRepository, EHRRepository
from cognicare.services.external import get_external_services
from cognicare.services.feature_gate import AI_SCRIBE, increment_usage
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import addon_required, permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.pagination import get_page_args
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

logger = logging.getLogger(__name__)

ehr_bp = Blueprint('ehr', __name__, url_prefix='/api/ehr')


def _ehr_scope():
    return scope_for(g.caller, EntityKind.EHR_RECORD)


def _record_usage(feature):
    """Count one billable AI Scribe call and return the new total."""
    increment_usage(db.session, g.caller.organization_id, AI_SCRIBE)
    db.session.commit()
    usage = AddOnRepository(db.session).usage(scope_for(g.caller, EntityKind.ORGANIZATION_ADDON), AI_SCRIBE)
    logger.info("%s used by organization %s (usage=%s)", feature, g.caller.organization_id, usage)
    return usage


@ehr_bp.route('', methods=['GET'])
@caller_required()
def list_records():
    page, limit = get_page_args()
    filters = {'patient_id': request.args.get('patient_id')}
    records, pagination = EHRRepository(db.session).list(_ehr_scope(), filters, page, limit)
    return jsonify({
        'success': True,
        'ehr_records': [r.to_dict() for r in records],
        'pagination': pagination
    }), 200


@ehr_bp.route('/patient/<patient_id>', methods=['GET'])
@caller_required()
def patient_records(patient_id):
    """All EHR records of a patient visible to the caller"""
    records = EHRRepository(db.session).for_patient(_ehr_scope(), patient_id)
    return jsonify({
        'success': True,
        'ehr_records': [r.to_dict(include_relations=True) for r in records]
    }), 200


@ehr_bp.route('', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.EHR_RECORD)
@addon_required(AI_SCRIBE)
def create_record():
    data = get_json_body()
    record = EHRRepository(db.session).create(_ehr_scope(), data)
    db.session.commit()
    audit_caller(g.caller, 'ehr_record', 'create', record.id, {'patient_id': record.patient_id})

    return jsonify({
        'success': True,
        'message': 'EHR record created successfully',
        'ehr_record': record.to_dict(include_relations=True)
    }), 201


@ehr_bp.route('/<record_id>', methods=['GET'])
@caller_required()
def get_record(record_id):
    record = EHRRepository(db.session).get(_ehr_scope(), record_id)
    return jsonify({
        'success': True,
        'ehr_record': record.to_dict(include_relations=True)
    }), 200


@ehr_bp.route('/<record_id>', methods=['PUT'])
@caller_required()
@permission_required(Action.UPDATE, Resource.EHR_RECORD)
@addon_required(AI_SCRIBE)
def update_record(record_id):
    """Edit a record; only its author or an admin may do so"""
    data = get_json_body()
    record = EHRRepository(db.session).update(_ehr_scope(), record_id, data)
    db.session.commit()
    audit_caller(g.caller, 'ehr_record', 'update', record.id, {'fields': sorted(data.keys())})

    return jsonify({
        'success': True,
        'message': 'EHR record updated successfully',
        'ehr_record': record.to_dict(include_relations=True)
    }), 200


# AI Scribe

@ehr_bp.route('/voice-to-text', methods=['POST'])
@caller_required()
@permission_required(Action.USE_AI, Resource.EHR_RECORD)
@addon_required(AI_SCRIBE)
def voice_to_text():
    data = get_json_body()
    if not data.get('audio_data'):
        raise ValidationError('audio_data is required')

    text = get_external_services().speech_to_text(data['audio_data'])
    usage = _record_usage('voice-to-text')

    return jsonify({
        'success': True,
        'transcription': text,
        'usage_count': usage
    }), 200


@ehr_bp.route('/ocr', methods=['POST'])
@caller_required()
@permission_required(Action.USE_AI, Resource.EHR_RECORD)
@addon_required(AI_SCRIBE)
def ocr():
    data = get_json_body()
    if not data.get('image_data'):
        raise ValidationError('image_data is required')

    text = get_external_services().extract_text(data['image_data'])
    usage = _record_usage('ocr')

    return jsonify({
        'success': True,
        'extracted_text': text,
        'usage_count': usage
    }), 200


@ehr_bp.route('/ai-summary', methods=['POST'])
@caller_required()
@permission_required(Action.USE_AI, Resource.EHR_RECORD)
@addon_required(AI_SCRIBE)
def ai_summary():
    data = get_json_body()
    text = (data.get('text') or '').strip()
    if not text:
        raise ValidationError('text is required')

    summary = get_external_services().summarize(text)
    usage = _record_usage('ai-summary')

    return jsonify({
        'success': True,
        'summary': summary,
        'usage_count': usage
    }), 200
