from .addons import AddOnRepository
from .appointments import AppointmentRepository
from .backups import BackupRepository
from .clinics import ClinicRepository
from .ehr import EHRRepository
from .organizations import OrganizationRepository
from .patients import PatientRepository

__all__ = [
    "AddOnRepository", "AppointmentRepository", "BackupRepository", "ClinicRepository",
    "EHRRepository", "OrganizationRepository", "PatientRepository",
]
