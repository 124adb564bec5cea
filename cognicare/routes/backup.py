from flask import Blueprint, Response, current_app, g, jsonify

from cognicare.extensions import db
from cognicare.models.base import isoformat, utcnow
from cognicare.models.enums import BackupReason, BackupType
from cognicare.repositories import BackupRepository
from cognicare.services import backup_service
from cognicare.services.external import get_external_services
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.pagination import get_page_args
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

backup_bp = Blueprint('backup', __name__, url_prefix='/api/backup')


def _backup_scope():
    return scope_for(g.caller, EntityKind.BACKUP)


@backup_bp.route('/cloud/latest', methods=['GET'])
@caller_required()
@permission_required(Action.READ, Resource.BACKUP)
def latest_cloud_backup():
    """Latest CLOUD backup with a time-limited download link"""
    backup = BackupRepository(db.session).latest(_backup_scope())
    url, expires_at = backup_service.download_link(get_external_services(), backup)
    return jsonify({
        'success': True,
        'backup': dict(backup.to_dict(), download_url=url, expires_at=isoformat(expires_at))
    }), 200


@backup_bp.route('/cloud/trigger', methods=['POST'])
@caller_required()
@permission_required(Action.CREATE, Resource.BACKUP)
def trigger_cloud_backup():
    """Take a manual CLOUD backup; limited to one per cooldown window"""
    backup = backup_service.trigger_cloud_backup(
        db.session, BackupRepository(db.session), _backup_scope(), get_external_services()
    )
    db.session.commit()
    audit_caller(g.caller, 'backup', 'create', backup.id, {'type': backup.backup_type})

    return jsonify({
        'success': True,
        'message': 'Backup created successfully',
        'backup': backup.to_dict()
    }), 201


@backup_bp.route('/local', methods=['GET'])
@caller_required()
@permission_required(Action.CREATE, Resource.BACKUP)
def local_backup():
    """Download the organization snapshot as a JSON file"""
    backup = backup_service.record_backup(
        db.session, g.caller.organization_id, g.caller.user_id,
        BackupType.LOCAL.value, BackupReason.MANUAL.value,
    )
    content = backup.content
    db.session.commit()
    audit_caller(g.caller, 'backup', 'download', backup.id, {'type': BackupType.LOCAL.value})

    filename = f"cognicare-backup-{utcnow().strftime('%Y-%m-%d')}.json"
    return Response(
        content,
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@backup_bp.route('/restore', methods=['POST'])
@caller_required()
@permission_required(Action.RESTORE, Resource.BACKUP)
def restore_backup():
    """
    Restore a snapshot into the organization. A restore point of the current
    state is always committed first.
    """
    data = get_json_body()
    restore_point, counts = backup_service.restore(db.session, _backup_scope(), data.get('backup_data'))
    audit_caller(g.caller, 'backup', 'restore', restore_point.id, {'restored_records': counts})

    return jsonify({
        'success': True,
        'message': 'Backup restored successfully',
        'restored_records': counts,
        'restore_point_id': restore_point.id
    }), 200


@backup_bp.route('/history', methods=['GET'])
@caller_required()
@permission_required(Action.READ, Resource.BACKUP)
def backup_history():
    page, limit = get_page_args(default_limit=current_app.config['BACKUP_HISTORY_PAGE_SIZE'])
    backups, pagination = BackupRepository(db.session).list(_backup_scope(), page=page, limit=limit)
    return jsonify({
        'success': True,
        'backups': [b.to_dict() for b in backups],
        'pagination': pagination
    }), 200
