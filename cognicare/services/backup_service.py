"""
Backup/restore orchestration: full-tenant snapshots and merge restores.
"""
import json
import logging

from flask import current_app

from cognicare.errors import RateLimited, ValidationError
from cognicare.models import (
    Appointment,
    Backup,
    Clinic,
    EHRRecord,
    Invite,
    Organization,
    OrganizationAddOn,
    Patient,
    Subscription,
    User,
)
from cognicare.models.base import isoformat, utcnow
from cognicare.models.enums import AppointmentStatus, BackupReason, BackupType, values
from cognicare.repositories.organizations import clean_organization_payload
from cognicare.utils.validation import parse_date, parse_datetime

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = '1.0.0'
REQUIRED_KEYS = ('organization', 'patients', 'appointments')


def build_snapshot(session, organization_id):
    """
    Deep export of one organization. Read in a single transaction; not
    isolated against concurrent writers.
    """
    organization = session.get(Organization, organization_id)
    clinic_ids = [c.id for c in session.query(Clinic.id).filter(Clinic.organization_id == organization_id)]
    clinics = session.query(Clinic).filter(Clinic.organization_id == organization_id).order_by(Clinic.created_at).all()
    patients = (
        session.query(Patient).filter(Patient.clinic_id.in_(clinic_ids)).order_by(Patient.created_at).all()
        if clinic_ids else []
    )
    patient_ids = [p.id for p in patients]
    appointments = (
        session.query(Appointment).filter(Appointment.clinic_id.in_(clinic_ids)).order_by(Appointment.appointment_date).all()
        if clinic_ids else []
    )
    ehr_records = (
        session.query(EHRRecord).filter(EHRRecord.patient_id.in_(patient_ids)).order_by(EHRRecord.visit_date).all()
        if patient_ids else []
    )
    users = session.query(User).filter(User.organization_id == organization_id).order_by(User.created_at).all()
    addons = session.query(OrganizationAddOn).filter(OrganizationAddOn.organization_id == organization_id).all()
    subscriptions = session.query(Subscription).filter(Subscription.organization_id == organization_id).all()
    invites = session.query(Invite).filter(Invite.organization_id == organization_id).all()
    backups = (
        session.query(Backup).filter(Backup.organization_id == organization_id)
        .order_by(Backup.created_at.desc()).all()
    )

    return {
        'version': SNAPSHOT_VERSION,
        'backup_date': isoformat(utcnow()),
        'organization': organization.to_dict() if organization else None,
        'users': [u.to_dict() for u in users],
        'clinics': [c.to_dict() for c in clinics],
        'patients': [dict(p.to_dict(), deleted_at=isoformat(p.deleted_at)) for p in patients],
        'appointments': [a.to_dict() for a in appointments],
        'ehr_records': [r.to_dict() for r in ehr_records],
        'addons': [a.to_dict() for a in addons],
        'subscriptions': [s.to_dict() for s in subscriptions],
        'invites': [i.to_dict() for i in invites],
        'backups': [b.to_dict() for b in backups],
    }


def serialize_snapshot(snapshot):
    return json.dumps(snapshot, default=str)


def record_backup(session, organization_id, user_id, backup_type, reason, services=None):
    """Snapshot the organization and store it; CLOUD backups are also uploaded."""
    snapshot = build_snapshot(session, organization_id)
    content = serialize_snapshot(snapshot)
    storage_url = None
    if backup_type == BackupType.CLOUD.value:
        filename = f"backup-{utcnow().strftime('%Y%m%dT%H%M%S')}.json"
        storage_url = services.upload_backup(organization_id, filename, content)

    backup = Backup(
        organization_id=organization_id,
        backup_type=backup_type,
        reason=reason,
        storage_url=storage_url,
        content=content,
        size_bytes=len(content.encode('utf-8')),
        created_by=user_id,
    )
    session.add(backup)
    session.flush()
    logger.info("Created %s backup %s for organization %s (%d bytes)",
                backup_type, backup.id, organization_id, backup.size_bytes)
    return backup


def trigger_cloud_backup(session, backups_repo, scope, services):
    """Manual cloud backup, limited to one per cooldown window."""
    cooldown = current_app.config['BACKUP_COOLDOWN']
    recent = backups_repo.latest_since(scope, utcnow() - cooldown)
    if recent:
        retry_after = int((recent.created_at + cooldown - utcnow()).total_seconds())
        raise RateLimited(
            'Please wait before triggering another backup',
            details={'last_backup_at': isoformat(recent.created_at), 'retry_after_seconds': max(retry_after, 0)},
        )
    return record_backup(session, scope.organization_id, scope.caller.user_id,
                         BackupType.CLOUD.value, BackupReason.MANUAL.value, services)


def download_link(services, backup):
    expires_at = utcnow() + current_app.config['BACKUP_DOWNLOAD_TTL']
    return services.signed_download_url(backup.storage_url, expires_at), expires_at


def validate_backup_shape(blob):
    if not isinstance(blob, dict):
        raise ValidationError('Invalid backup data format')
    missing = [key for key in REQUIRED_KEYS if key not in blob]
    if missing:
        raise ValidationError('Invalid backup data format', details={'missing': missing})
    if not isinstance(blob['organization'], dict):
        raise ValidationError('Backup organization must be an object')
    for key in ('patients', 'appointments', 'clinics', 'ehr_records'):
        if key in blob and not isinstance(blob[key], list):
            raise ValidationError(f'Backup {key} must be a list')


def restore(session, scope, blob):
    """
    Restore a snapshot into the caller's organization.

    The current state is saved as a PRE_RESTORE backup and committed before
    anything else, so it survives even when the incoming data is rejected.
    Returns (restore_point, restored_counts).
    """
    organization_id = scope.organization_id
    restore_point = record_backup(session, organization_id, scope.caller.user_id,
                                  BackupType.LOCAL.value, BackupReason.PRE_RESTORE.value)
    session.commit()
    logger.warning("Restore requested for organization %s by %s; restore point %s",
                   organization_id, scope.caller.user_id, restore_point.id)

    try:
        validate_backup_shape(blob)
        source_org = blob['organization'].get('id')
        if source_org and source_org != organization_id:
            raise ValidationError('Backup belongs to a different organization')
        counts = apply_snapshot(session, organization_id, blob)
        session.commit()
    except ValidationError as e:
        session.rollback()
        e.details = dict(e.details or {}, restore_point_id=restore_point.id)
        raise
    except Exception:
        session.rollback()
        logger.error("Restore failed for organization %s; restore point %s kept",
                     organization_id, restore_point.id, exc_info=True)
        raise
    return restore_point, counts


def _owned(session, model, record_id, organization_id, owner):
    """(row, allowed): the existing row and whether it may be written for this organization."""
    row = session.get(model, record_id) if record_id else None
    if row is None:
        return None, True
    return row, owner(row) == organization_id


def _new(model, record_id, **kwargs):
    if record_id:
        kwargs['id'] = record_id
    return model(**kwargs)


def apply_snapshot(session, organization_id, blob):
    """Upsert snapshot rows by id; rows tied to other organizations are skipped."""
    counts = {'organization': 0, 'clinics': 0, 'patients': 0, 'appointments': 0, 'ehr_records': 0, 'skipped': 0}

    organization = session.get(Organization, organization_id)
    org_fields = {k: blob['organization'].get(k) for k in
                  ('name', 'address', 'gst_number', 'contact_email', 'contact_phone')
                  if blob['organization'].get(k) is not None}
    for key, value in clean_organization_payload(org_fields, partial=True).items():
        setattr(organization, key, value)
    counts['organization'] = 1

    for data in blob.get('clinics') or []:
        clinic, allowed = _owned(session, Clinic, data.get('id'), organization_id, lambda c: c.organization_id)
        if not allowed or not data.get('name'):
            counts['skipped'] += 1
            continue
        if clinic is None:
            clinic = _new(Clinic, data['id'], organization_id=organization_id)
            session.add(clinic)
        clinic.name = data['name']
        clinic.address = data.get('address') or ''
        clinic.phone = data.get('phone') or ''
        counts['clinics'] += 1
    session.flush()

    org_clinic_ids = {c.id for c in session.query(Clinic.id).filter(Clinic.organization_id == organization_id)}
    def clinic_owner(row):
        return organization_id if row.clinic_id in org_clinic_ids else None

    for data in blob['patients']:
        patient, allowed = _owned(session, Patient, data.get('id'), organization_id, clinic_owner)
        if not allowed or data.get('clinic_id') not in org_clinic_ids or not data.get('phone'):
            counts['skipped'] += 1
            continue
        duplicate = (
            session.query(Patient.id)
            .filter(Patient.clinic_id.in_(org_clinic_ids), Patient.phone == data['phone'],
                    Patient.deleted_at.is_(None), Patient.id != data.get('id'))
            .first()
        )
        if duplicate and not data.get('deleted_at'):
            counts['skipped'] += 1
            continue
        if patient is None:
            patient = _new(Patient, data.get('id'))
            session.add(patient)
        patient.clinic_id = data['clinic_id']
        patient.name = data.get('name') or 'Unknown'
        patient.phone = data['phone']
        patient.email = data.get('email')
        patient.date_of_birth = parse_date(data.get('date_of_birth'), 'date_of_birth')
        patient.gender = data.get('gender')
        patient.address = data.get('address')
        patient.emergency_contact = data.get('emergency_contact')
        patient.blood_group = data.get('blood_group')
        patient.allergies = data.get('allergies') or []
        patient.chronic_conditions = data.get('chronic_conditions') or []
        patient.deleted_at = parse_datetime(data['deleted_at'], 'deleted_at') if data.get('deleted_at') else None
        counts['patients'] += 1
    session.flush()

    org_patient_ids = {p.id for p in session.query(Patient.id).filter(Patient.clinic_id.in_(org_clinic_ids))} if org_clinic_ids else set()
    org_user_ids = {u.id for u in session.query(User.id).filter(User.organization_id == organization_id)}

    for data in blob['appointments']:
        appointment, allowed = _owned(session, Appointment, data.get('id'), organization_id, clinic_owner)
        if (not allowed or data.get('patient_id') not in org_patient_ids
                or data.get('clinic_id') not in org_clinic_ids or data.get('doctor_id') not in org_user_ids
                or not data.get('appointment_date')):
            counts['skipped'] += 1
            continue
        if appointment is None:
            appointment = _new(Appointment, data.get('id'))
            session.add(appointment)
        appointment.patient_id = data['patient_id']
        appointment.clinic_id = data['clinic_id']
        appointment.doctor_id = data['doctor_id']
        appointment.appointment_date = parse_datetime(data['appointment_date'], 'appointment_date')
        appointment.duration = data.get('duration') or 30
        appointment.status = data.get('status') if data.get('status') in values(AppointmentStatus) else AppointmentStatus.SCHEDULED.value
        appointment.notes = data.get('notes')
        appointment.diagnosis = data.get('diagnosis')
        appointment.prescription = data.get('prescription')
        appointment.follow_up_date = parse_date(data.get('follow_up_date'), 'follow_up_date')
        counts['appointments'] += 1
    session.flush()

    def patient_owner(row):
        return organization_id if row.patient_id in org_patient_ids else None

    for data in blob.get('ehr_records') or []:
        record, allowed = _owned(session, EHRRecord, data.get('id'), organization_id, patient_owner)
        if not allowed or data.get('patient_id') not in org_patient_ids or data.get('doctor_id') not in org_user_ids:
            counts['skipped'] += 1
            continue
        if record is None:
            record = _new(EHRRecord, data.get('id'))
            session.add(record)
        record.patient_id = data['patient_id']
        record.doctor_id = data['doctor_id']
        record.appointment_id = data.get('appointment_id')
        if data.get('visit_date'):
            record.visit_date = parse_datetime(data['visit_date'], 'visit_date')
        for field in EHRRecord.CLINICAL_FIELDS:
            setattr(record, field, data.get(field))
        record.attachments = data.get('attachments') or []
        counts['ehr_records'] += 1
    session.flush()

    logger.info("Restored organization %s: %s", organization_id, counts)
    return counts
