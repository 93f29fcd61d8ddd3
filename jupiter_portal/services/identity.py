"""Identity resolution.

Turns the auth provider's bearer token into an Identity carrying the
user id, role and display name. Every policy check and service call
receives the Identity explicitly; nothing reads a global user.

Profile lookup outcomes:
    - no token: anonymous identity (all fields None)
    - profile row missing: role CLIENT, display name = email. New
      accounts reach the portal before their profile row exists.
    - profile store error: IdentityUnavailableError. Staff are never
      silently demoted and nobody is silently granted client access.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from jupiter_portal import db
from jupiter_portal.exceptions import AuthenticationError, IdentityUnavailableError
from jupiter_portal.models import Profile, Role
from jupiter_portal.services import user_service

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'


@dataclass(frozen=True)
class Identity:
    """The caller of an operation."""
    user_id: Optional[str]
    role: Optional[Role]
    display_name: Optional[str]
    email: Optional[str] = None

    @classmethod
    def anonymous(cls) -> 'Identity':
        return cls(user_id=None, role=None, display_name=None)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_staff(self) -> bool:
        return self.role is not None and self.role.is_staff

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'role': self.role.value if self.role else None,
            'display_name': self.display_name,
            'email': self.email,
        }


def decode_access_token(token: str) -> dict:
    """Verify an access token and return its claims.

    Args:
        token: Raw JWT from the Authorization header.

    Returns:
        The decoded claims; ``sub`` is the user id.

    Raises:
        AuthenticationError: If the token is expired, badly signed or
            has no subject.
    """
    try:
        claims = jwt.decode(
            token,
            current_app.config['AUTH_JWT_SECRET'],
            algorithms=[ALGORITHM],
            audience=current_app.config.get('AUTH_JWT_AUDIENCE'),
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Session expired, please sign in again')
    except jwt.InvalidTokenError as e:
        logger.info('Rejected access token: %s', e)
        raise AuthenticationError('Invalid access token')

    if not claims.get('sub'):
        raise AuthenticationError('Invalid access token')
    return claims


def fetch_profile(user_id: str, email: str = None) -> Optional[Profile]:
    """Load the profile for a user id.

    A user with no profile whose email matches unclaimed projects gets
    a client profile and those projects (see
    user_service.claim_pending_client).

    Returns:
        The Profile, or None if no row exists yet.

    Raises:
        IdentityUnavailableError: If the profile store fails.
    """
    try:
        profile = db.session.get(Profile, user_id)
        if profile is None and email:
            profile = user_service.claim_pending_client(user_id, email)
        return profile
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Profile lookup failed', extra={'user_id': user_id})
        raise IdentityUnavailableError(user_id)


def identity_from_claims(claims: dict) -> Identity:
    """Build an Identity from verified token claims and the profile row."""
    user_id = str(claims['sub'])
    email = claims.get('email')
    profile = fetch_profile(user_id, email)

    if profile is None:
        logger.warning(
            'User %s authenticated but has no profile; treating as client',
            user_id, extra={'user_id': user_id},
        )
        return Identity(user_id=user_id, role=Role.CLIENT, display_name=email, email=email)

    role = Role.parse(profile.role)
    if role is None:
        logger.warning('Profile %s has unknown role %r', user_id, profile.role)
    return Identity(
        user_id=user_id,
        role=role,
        display_name=profile.full_name or profile.email or email,
        email=profile.email or email,
    )


def resolve_identity(token: Optional[str]) -> Identity:
    """Resolve a bearer token to an Identity.

    Args:
        token: Access token, or None when the request carries no session.

    Returns:
        The caller's Identity; anonymous when there is no token.
    """
    if not token:
        return Identity.anonymous()
    return identity_from_claims(decode_access_token(token))
