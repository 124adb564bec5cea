"""
Celery tasks for scheduled organization backups
"""
import logging

from cognicare.extensions import celery, db
from cognicare.models import Organization
from cognicare.models.base import isoformat, utcnow
from cognicare.models.enums import BackupReason, BackupType
from cognicare.services.backup_service import record_backup
from cognicare.services.external import get_external_services

logger = logging.getLogger(__name__)


def backup_organization(organization_id):
    """Take and commit one SCHEDULED cloud backup; failures are reported, not raised."""
    try:
        if not db.session.get(Organization, organization_id):
            return {'success': False, 'organization_id': organization_id, 'error': 'Organization not found'}

        backup = record_backup(
            db.session, organization_id, None,
            BackupType.CLOUD.value, BackupReason.SCHEDULED.value,
            get_external_services(),
        )
        db.session.commit()
        return {
            'success': True,
            'organization_id': organization_id,
            'backup_id': backup.id,
            'size_bytes': backup.size_bytes,
        }

    except Exception as e:
        logger.error("Scheduled backup failed for organization %s: %s", organization_id, e, exc_info=True)
        db.session.rollback()
        return {'success': False, 'organization_id': organization_id, 'error': str(e)}


@celery.task(name='tasks.cloud_backup_organization')
def cloud_backup_organization(organization_id):
    """
    Take a SCHEDULED cloud backup of one organization

    Args:
        organization_id: Organization ID

    Returns:
        dict: Backup result
    """
    return backup_organization(organization_id)


@celery.task(name='tasks.scheduled_cloud_backups')
def scheduled_cloud_backups():
    """
    Daily cloud backup of every organization; one failure does not stop the rest

    Returns:
        dict: Summary of the run
    """
    organization_ids = [row[0] for row in db.session.query(Organization.id).order_by(Organization.created_at)]
    results = [backup_organization(org_id) for org_id in organization_ids]
    succeeded = sum(1 for r in results if r['success'])

    logger.info("Scheduled backups finished: %d/%d organizations", succeeded, len(results))
    return {
        'success': succeeded == len(results),
        'total': len(results),
        'succeeded': succeeded,
        'failed': [r['organization_id'] for r in results if not r['success']],
        'timestamp': isoformat(utcnow()),
    }
