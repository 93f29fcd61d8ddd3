"""User profile model.

Accounts live in the hosted auth provider. A profile row carries the
attributes the portal needs for authorization: the role and the name
shown to other users. The profile id is the auth provider's user id.
"""
import enum
from datetime import datetime
from typing import Optional

from jupiter_portal import db
from jupiter_portal.models._common import iso, utcnow


class Role(enum.Enum):
    """Closed set of portal roles.

    Stored as the string value in the database. Use ``is_staff`` for
    coarse staff-vs-client gating and compare members directly for
    privileged actions.
    """
    CLIENT = 'client'
    STAFF_DRAFTER = 'staff_drafter'
    STAFF_MANAGER = 'staff_manager'
    STAFF_ADMIN = 'staff_admin'

    @property
    def is_staff(self) -> bool:
        return self is not Role.CLIENT

    @property
    def is_privileged(self) -> bool:
        """Admins and managers may edit any project."""
        return self in (Role.STAFF_ADMIN, Role.STAFF_MANAGER)

    @classmethod
    def parse(cls, value) -> Optional['Role']:
        """Map a stored role string to a Role, or None if unknown/absent."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def staff_values(cls) -> list[str]:
        return [r.value for r in cls if r.is_staff]


class Profile(db.Model):
    """SQLAlchemy model for user profiles.

    Attributes:
        id: Auth provider user id (UUID string).
        email: Login email, unique across profiles.
        full_name: Display name.
        role: Role value string, defaults to client.
        created_at: Timestamp when the profile was created.
        updated_at: Timestamp when the profile was last modified.
    """
    __tablename__ = 'profiles'

    id: str = db.Column(db.String(36), primary_key=True)
    email: str = db.Column(db.String(320), nullable=False, unique=True, index=True)
    full_name: Optional[str] = db.Column(db.String(200), nullable=True)
    role: str = db.Column(
        db.String(30),
        nullable=False,
        default=Role.CLIENT.value
    )

    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f'<Profile {self.email} ({self.role})>'

    @property
    def role_enum(self) -> Optional[Role]:
        return Role.parse(self.role)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }
