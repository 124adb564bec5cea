import logging

from flask import Blueprint, g, jsonify
from sqlalchemy import func

from cognicare.extensions import db
from cognicare.models import Appointment, Clinic, Patient
from cognicare.repositories import AddOnRepository, ClinicRepository, OrganizationRepository
from cognicare.services.email_service import send_invite_email
from cognicare.utils.audit import audit_caller
from cognicare.utils.decorators import permission_required
from cognicare.utils.identity import caller_required
from cognicare.utils.permissions import Action, Resource
from cognicare.utils.scope import EntityKind, scope_for
from cognicare.utils.validation import get_json_body

logger = logging.getLogger(__name__)

organization_bp = Blueprint('organization', __name__, url_prefix='/api/organizations')


@organization_bp.route('', methods=['POST'])
@caller_required(require_organization=False)
def create_organization():
    """Create an organization; the caller becomes its ADMIN"""
    data = get_json_body()
    organization = OrganizationRepository(db.session).create(g.caller, data)
    db.session.commit()

    logger.info("Organization %s created by %s", organization.id, g.caller.user_id)
    audit_caller(g.caller, 'organization', 'create', organization.id, {'name': organization.name})

    return jsonify({
        'success': True,
        'message': 'Organization created successfully',
        'organization': organization.to_dict()
    }), 201


@organization_bp.route('/me', methods=['GET'])
@caller_required()
def get_my_organization():
    """
    Organization profile with clinics, members, enabled add-ons,
    current subscription and counts
    """
    # Step 1: Load the organization inside the caller's scope
    repo = OrganizationRepository(db.session)
    organization = repo.current(scope_for(g.caller, EntityKind.ORGANIZATION))

    # Step 2: Related entities
    clinic_scope = scope_for(g.caller, EntityKind.CLINIC)
    clinics = ClinicRepository(db.session).query(clinic_scope).order_by(Clinic.created_at.asc()).all()
    members = repo.members(scope_for(g.caller, EntityKind.ORGANIZATION))
    addon_repo = AddOnRepository(db.session)
    addon_scope = scope_for(g.caller, EntityKind.ORGANIZATION_ADDON)
    enabled = addon_repo.enabled(addon_scope)
    subscription = addon_repo.current_subscription(addon_scope)

    # Step 3: Counts
    patient_count = (
        scope_for(g.caller, EntityKind.PATIENT)
        .apply(db.session.query(func.count(Patient.id)))
        .scalar()
    )
    appointment_count = (
        scope_for(g.caller, EntityKind.APPOINTMENT)
        .apply(db.session.query(func.count(Appointment.id)))
        .scalar()
    )

    return jsonify({
        'success': True,
        'organization': dict(
            organization.to_dict(),
            clinics=[c.to_dict() for c in clinics],
            users=members,
            addons=[a.to_dict() for a in enabled],
            subscription=subscription.to_dict() if subscription else None,
            counts={
                'clinics': len(clinics),
                'users': len(members),
                'patients': patient_count,
                'appointments': appointment_count,
            },
        )
    }), 200


@organization_bp.route('/me', methods=['PUT'])
@caller_required()
@permission_required(Action.UPDATE, Resource.ORGANIZATION)
def update_my_organization():
    """Update the organization profile (ADMIN)"""
    data = get_json_body()
    scope = scope_for(g.caller, EntityKind.ORGANIZATION)
    organization = OrganizationRepository(db.session).update(scope, scope.organization_id, data)
    db.session.commit()
    audit_caller(g.caller, 'organization', 'update', organization.id, {'fields': sorted(data.keys())})

    return jsonify({
        'success': True,
        'message': 'Organization updated successfully',
        'organization': organization.to_dict()
    }), 200


@organization_bp.route('/invite', methods=['POST'])
@caller_required()
@permission_required(Action.INVITE, Resource.ORGANIZATION)
def invite_user():
    """Invite a user by email (ADMIN)"""
    data = get_json_body()
    repo = OrganizationRepository(db.session)
    invite = repo.invite(scope_for(g.caller, EntityKind.ORGANIZATION), data)
    organization = repo.current(scope_for(g.caller, EntityKind.ORGANIZATION))
    db.session.commit()

    send_invite_email(invite.email, organization.name, g.caller.name, invite.role, invite.token)
    audit_caller(g.caller, 'invite', 'create', invite.id, {'email': invite.email, 'role': invite.role})

    return jsonify({
        'success': True,
        'message': 'Invitation sent successfully',
        'invite': invite.to_dict()
    }), 201


@organization_bp.route('/join/<token>', methods=['POST'])
@caller_required(require_organization=False)
def join_organization(token):
    """Consume an invite and join its organization"""
    organization, invite = OrganizationRepository(db.session).join(g.caller, token)
    db.session.commit()

    logger.info("User %s joined organization %s as %s", g.caller.user_id, organization.id, invite.role)
    audit_caller(g.caller, 'invite', 'join', invite.id, {'organization_id': organization.id})

    return jsonify({
        'success': True,
        'message': 'Successfully joined organization',
        'organization': organization.to_dict(),
        'role': invite.role
    }), 200


@organization_bp.route('/users', methods=['GET'])
@caller_required()
def list_users():
    """Members with their appointment and EHR counts"""
    users = OrganizationRepository(db.session).members(scope_for(g.caller, EntityKind.ORGANIZATION))
    return jsonify({
        'success': True,
        'users': users
    }), 200


@organization_bp.route('/users/<user_id>', methods=['DELETE'])
@caller_required()
@permission_required(Action.REMOVE_MEMBER, Resource.ORGANIZATION)
def remove_user(user_id):
    """Detach a member from the organization (ADMIN)"""
    member = OrganizationRepository(db.session).remove_member(scope_for(g.caller, EntityKind.ORGANIZATION), user_id)
    db.session.commit()
    audit_caller(g.caller, 'user', 'remove_member', member.id, {'email': member.email})

    return jsonify({
        'success': True,
        'message': 'User removed from organization'
    }), 200
