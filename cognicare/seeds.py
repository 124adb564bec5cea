"""
Database seed data: the add-on catalog, created when the table is empty.
"""
import logging

from cognicare.extensions import db
from cognicare.models import AddOn
from cognicare.services.feature_gate import ADVANCED_ANALYTICS, AI_SCRIBE

logger = logging.getLogger(__name__)

ADDON_CATALOG = [
    {
        "name": AI_SCRIBE,
        "description": "Voice-to-text consultation notes, prescription OCR and AI visit summaries.",
        "price": 99900,
        "billing_model": "USAGE",
    },
    {
        "name": ADVANCED_ANALYTICS,
        "description": "Appointment and patient analytics: time-of-day load, no-show rates, demographics, top diagnoses.",
        "price": 49900,
        "billing_model": "MONTHLY",
    },
]


def seed_addons():
    """Create the default add-on catalog if none exists. Returns the number created."""
    try:
        if AddOn.query.count() == 0:
            for item in ADDON_CATALOG:
                db.session.add(AddOn(**item))
            db.session.commit()
            logger.info("Seeded %d add-ons", len(ADDON_CATALOG))
            return len(ADDON_CATALOG)
    except Exception as e:
        db.session.rollback()
        logger.warning("Add-on seeding skipped: %s", e)
    return 0
