import logging
import secrets

from flask import current_app
from sqlalchemy import func, update

from cognicare.errors import (
    AlreadyInOrganization,
    DuplicateEmail,
    InvalidInvite,
    InviteConsumed,
    InviteExpired,
    LastAdminProtected,
    NotFound,
    PendingInvite,
    PermissionDenied,
    ValidationError,
)
from cognicare.models import Appointment, EHRRecord, Invite, Organization, User
from cognicare.models.base import utcnow
from cognicare.models.enums import Role, values
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import normalize_phone, validate_choice, validate_email, validate_length
from .base import TenantRepository

logger = logging.getLogger(__name__)


def clean_organization_payload(data, partial=False):
    values_ = {}
    if not partial or 'name' in data:
        values_['name'] = validate_length(data.get('name'), 'name', 2, 200)
    if 'address' in data:
        values_['address'] = validate_length(data.get('address'), 'address', max_length=500, required=False)
    if 'gst_number' in data:
        gst = validate_length(data.get('gst_number'), 'gst_number', 15, 15, required=False)
        values_['gst_number'] = gst.upper() if gst else None
    if 'contact_email' in data:
        values_['contact_email'] = validate_email(data.get('contact_email'), 'contact_email', required=False)
    if 'contact_phone' in data:
        phone = data.get('contact_phone')
        values_['contact_phone'] = normalize_phone(phone, 'contact_phone') if phone else None
    return values_


class OrganizationRepository(TenantRepository):
    model = Organization
    entity_name = 'Organization'

    def current(self, scope):
        return self.get(scope, scope.organization_id)

    def create(self, caller, payload):
        """
        Create an organization and make the caller its ADMIN in one
        transaction. The membership update only applies while the caller is
        still unaffiliated, so two concurrent creates cannot both succeed.
        """
        if caller.organization_id:
            raise AlreadyInOrganization()
        organization = Organization(**clean_organization_payload(payload))
        self.session.add(organization)
        self.session.flush()

        result = self.session.execute(
            update(User)
            .where(User.id == caller.user_id, User.organization_id.is_(None))
            .values(organization_id=organization.id, role=Role.ADMIN.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise AlreadyInOrganization()
        return organization

    def update(self, scope, entity_id, payload):
        organization = self.get(scope, entity_id)
        self.assign(organization, clean_organization_payload(payload, partial=True))
        self.session.flush()
        return organization

    def delete(self, scope, entity_id):
        raise PermissionDenied('Organizations cannot be deleted through the API')

    # Members

    def members(self, scope):
        """Members of the organization with their appointment and EHR counts."""
        users = (
            scope_for(scope.caller, EntityKind.USER)
            .apply(self.session.query(User))
            .order_by(User.created_at.asc())
            .all()
        )
        user_ids = [u.id for u in users]
        appointment_counts = dict(
            self.session.query(Appointment.doctor_id, func.count(Appointment.id))
            .filter(Appointment.doctor_id.in_(user_ids))
            .group_by(Appointment.doctor_id)
            .all()
        ) if user_ids else {}
        ehr_counts = dict(
            self.session.query(EHRRecord.doctor_id, func.count(EHRRecord.id))
            .filter(EHRRecord.doctor_id.in_(user_ids))
            .group_by(EHRRecord.doctor_id)
            .all()
        ) if user_ids else {}
        return [
            dict(u.to_dict(), appointment_count=appointment_counts.get(u.id, 0), ehr_count=ehr_counts.get(u.id, 0))
            for u in users
        ]

    def remove_member(self, scope, user_id):
        """Detach a member from the organization; the last ADMIN stays."""
        member = (
            scope_for(scope.caller, EntityKind.USER)
            .apply(self.session.query(User))
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )
        if not member:
            raise NotFound('User not found')

        if member.role == Role.ADMIN.value:
            admins = (
                self.session.query(User.id)
                .filter(User.organization_id == scope.organization_id, User.role == Role.ADMIN.value)
                .with_for_update()
                .all()
            )
            if len(admins) <= 1:
                logger.warning("Refused removal of last admin %s from organization %s", member.id, scope.organization_id)
                raise LastAdminProtected()

        member.organization_id = None
        self.session.flush()
        return member

    # Invites

    def invite(self, scope, payload):
        email = validate_email(payload.get('email'))
        role = validate_choice(payload.get('role') or Role.DOCTOR.value, 'role', values(Role))

        if self.session.query(User.id).filter(func.lower(User.email) == email).first():
            raise DuplicateEmail()

        now = utcnow()
        pending = (
            scope_for(scope.caller, EntityKind.INVITE)
            .apply(self.session.query(Invite))
            .filter(func.lower(Invite.email) == email, Invite.is_used.is_(False), Invite.expires_at > now)
            .first()
        )
        if pending:
            raise PendingInvite()

        invite = Invite(
            organization_id=scope.organization_id,
            email=email,
            role=role,
            token=secrets.token_hex(32),
            invited_by=scope.caller.user_id,
            expires_at=now + current_app.config['INVITE_TTL'],
        )
        self.session.add(invite)
        self.session.flush()
        return invite

    def join(self, caller, token):
        """
        Consume an invite and attach the caller to its organization.

        Both updates are conditional (compare-and-swap) and share one
        transaction: an invite is consumed once and a user joins once, even
        under concurrent requests.
        """
        if not token:
            raise InvalidInvite()
        invite = self.session.query(Invite).filter(Invite.token == token).first()
        if not invite:
            raise InvalidInvite()
        if invite.is_used:
            raise InviteConsumed()
        now = utcnow()
        if invite.is_expired(now):
            raise InviteExpired()
        if caller.organization_id:
            raise AlreadyInOrganization()
        if invite.email.lower() != caller.email.lower():
            raise ValidationError('This invite was issued to a different email address', code='INVITE_EMAIL_MISMATCH')

        consumed = self.session.execute(
            update(Invite)
            .where(Invite.id == invite.id, Invite.is_used.is_(False))
            .values(is_used=True, used_at=now, used_by=caller.user_id)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            self.session.rollback()
            raise InviteConsumed()

        joined = self.session.execute(
            update(User)
            .where(User.id == caller.user_id, User.organization_id.is_(None))
            .values(organization_id=invite.organization_id, role=invite.role)
            .execution_options(synchronize_session=False)
        )
        if joined.rowcount != 1:
            self.session.rollback()
            raise AlreadyInOrganization()

        self.session.flush()
        return self.session.get(Organization, invite.organization_id), invite
