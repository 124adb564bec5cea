from .organization import Organization
from .user import User
from .clinic import Clinic
from .patient import Patient
from .appointment import Appointment
from .ehr_record import EHRRecord
from .addon import AddOn, OrganizationAddOn
from .subscription import Subscription
from .invite import Invite
from .backup import Backup
from .audit_log import AuditLog

__all__ = ["Organization", "User", "Clinic", "Patient", "Appointment", "EHRRecord", "AddOn", "OrganizationAddOn", "Subscription", "Invite", "Backup", "AuditLog"]
