from .auth import auth_bp
from .organizations import organization_bp
from .clinics import clinic_bp
from .patients import patient_bp
from .appointments import appointment_bp
from .ehr import ehr_bp
from .addons import addon_bp
from .analytics import analytics_bp
from .backup import backup_bp
from .health import health_bp

__all__ = [
    'auth_bp', 'organization_bp', 'clinic_bp', 'patient_bp', 'appointment_bp',
    'ehr_bp', 'addon_bp', 'analytics_bp', 'backup_bp', 'health_bp',
]
