"""Profile lookups and user management."""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from jupiter_portal import db
from jupiter_portal.exceptions import (
    AuthenticationError,
    NotFoundError,
    RemoteCallError,
    ValidationError,
)
from jupiter_portal.models import ActivityAction, Profile, Project, Role
from jupiter_portal.services import policy
from jupiter_portal.services.activity_service import Outcome, record_activity_for
from jupiter_portal.services.validation import require_fields

logger = logging.getLogger(__name__)


def get_profile(user_id: str) -> Optional[Profile]:
    return db.session.get(Profile, user_id)


def find_profile_by_email(email: str) -> Optional[Profile]:
    """Case-insensitive lookup of a profile by email."""
    if not email:
        return None
    return (
        db.session.query(Profile)
        .filter(func.lower(Profile.email) == email.strip().lower())
        .first()
    )


def list_profiles(identity, role: str = None, staff_only: bool = False) -> list[Profile]:
    """Profiles for assignment pickers and the user admin screen.

    Args:
        identity: The caller; must be staff.
        role: Only this role value.
        staff_only: Only staff roles (ignored when role is given).

    Raises:
        PermissionDeniedError: Caller is not staff.
        ValidationError: Unknown role value.
    """
    policy.require(policy.can_view_staff_area(identity), 'list users')

    query = db.session.query(Profile)
    if role:
        if Role.parse(role) is None:
            raise ValidationError(f'Unknown role: {role}', details={'role': role})
        query = query.filter(Profile.role == role)
    elif staff_only:
        query = query.filter(Profile.role.in_(Role.staff_values()))
    return query.order_by(Profile.full_name.asc().nulls_last(), Profile.email.asc()).all()


def claim_pending_client(user_id: str, email: str) -> Optional[Profile]:
    """Give a newly signed-up client the projects created for their email.

    Projects created for a client who had no account yet carry only
    ``client_email``. On the client's first sign-in this creates their
    client profile and points those projects at it, in one transaction.

    Returns:
        The new Profile, or None when no unclaimed project matches or
        another profile already holds the email.

    Raises:
        SQLAlchemyError: The store failed; nothing was claimed.
    """
    if not email or find_profile_by_email(email) is not None:
        return None
    projects = (
        db.session.query(Project)
        .filter(Project.client_id.is_(None))
        .filter(func.lower(Project.client_email) == email.strip().lower())
        .order_by(Project.created_at.asc(), Project.id.asc())
        .all()
    )
    if not projects:
        return None

    profile = Profile(
        id=user_id,
        email=email.strip(),
        full_name=next((p.client_name for p in projects if p.client_name), None),
        role=Role.CLIENT.value,
    )
    db.session.add(profile)
    for project in projects:
        project.client_id = user_id
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info('Client %s claimed %d project(s)', email, len(projects),
                extra={'user_id': user_id})
    return profile


def change_role(identity, user_id: str, role: str) -> Outcome:
    """Promote or demote a user. Admin only.

    Takes effect on the user's next identity resolution.

    Raises:
        PermissionDeniedError: Caller is not an admin.
        ValidationError: Unknown role, or an admin changing their own role.
        NotFoundError: No such profile.
    """
    policy.require(policy.can_manage_users(identity), 'change user roles')

    new_role = Role.parse(role)
    if new_role is None:
        raise ValidationError(f'Unknown role: {role}', details={'role': role})
    if user_id == identity.user_id:
        raise ValidationError('Admins cannot change their own role')

    profile = get_profile(user_id)
    if profile is None:
        raise NotFoundError('User', user_id)

    previous = profile.role
    profile.role = new_role.value
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Role change failed', extra={'user_id': user_id})
        raise RemoteCallError('Failed to update user role')

    logger.info('Role of %s changed from %s to %s', user_id, previous, new_role.value)
    outcome = Outcome(profile)
    return record_activity_for(
        outcome, None, ActivityAction.ROLE_CHANGED, identity.user_id,
        {'user_id': user_id, 'from': previous, 'to': new_role.value},
    )


def update_display_name(identity, full_name: str) -> Profile:
    """Update the caller's own full_name.

    Creates the profile (as a client) when the account has none yet.

    Raises:
        AuthenticationError: Anonymous caller.
        ValidationError: Blank name.
    """
    if not identity.is_authenticated:
        raise AuthenticationError()
    require_fields({'full_name': full_name}, ['full_name'])

    profile = get_profile(identity.user_id)
    if profile is None:
        if not identity.email:
            raise ValidationError('Profile has no email to register')
        profile = Profile(id=identity.user_id, email=identity.email, role=Role.CLIENT.value)
        db.session.add(profile)
    profile.full_name = full_name.strip()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Profile update failed', extra={'user_id': identity.user_id})
        raise RemoteCallError('Failed to update profile')
    return profile
