"""
Audit logging: create, update, archive, cancel, restore, membership changes.
"""
import json
import logging
from typing import Any, Optional

from cognicare.extensions import db
from cognicare.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[str] = None,
    entity_id: Optional[Any] = None,
    details: Optional[dict] = None,
    organization_id: Optional[str] = None,
) -> None:
    """Append an audit log entry. Never raises."""
    try:
        entry = AuditLog(
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            user_id=user_id,
            details=json.dumps(details, default=str) if details else None,
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as e:
        logger.warning("Audit log failed: %s", e)
        db.session.rollback()


def audit_caller(caller, entity_type, action, entity_id=None, details=None):
    """log_audit() with user and organization taken from a CallerContext."""
    log_audit(entity_type, action, user_id=caller.user_id, entity_id=entity_id,
              details=details, organization_id=caller.organization_id)
