"""
Add-on gate checks and the billable usage counter.
"""
import logging

from sqlalchemy import select, update

from cognicare.errors import AddOnRequired
from cognicare.models import AddOn, OrganizationAddOn

logger = logging.getLogger(__name__)

AI_SCRIBE = 'AI Scribe'
ADVANCED_ANALYTICS = 'Advanced Analytics'


def ensure_addon_active(session, organization_id, addon_name):
    """Return the active OrganizationAddOn row for `addon_name` or raise AddOnRequired."""
    org_addon = (
        session.query(OrganizationAddOn)
        .join(AddOn, OrganizationAddOn.addon_id == AddOn.id)
        .filter(
            OrganizationAddOn.organization_id == organization_id,
            OrganizationAddOn.is_active.is_(True),
            AddOn.name == addon_name,
        )
        .first()
    )
    if not org_addon:
        raise AddOnRequired(addon_name)
    return org_addon


def increment_usage(session, organization_id, addon_name):
    """
    Bump the usage counter in a single UPDATE so concurrent billable
    calls never lose an increment.
    """
    addon_ids = select(AddOn.id).where(AddOn.name == addon_name)
    result = session.execute(
        update(OrganizationAddOn)
        .where(
            OrganizationAddOn.organization_id == organization_id,
            OrganizationAddOn.addon_id.in_(addon_ids),
        )
        .values(usage_count=OrganizationAddOn.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Usage increment for %s on organization %s touched %s rows",
                       addon_name, organization_id, result.rowcount)
    return result.rowcount
