"""Exception hierarchy for the portal.

Services raise these; the error handlers registered in
jupiter_portal.routes translate each one to a JSON response with a
fixed HTTP status code. Routes do not catch them individually.

Usage:
    from jupiter_portal.exceptions import NotFoundError, ValidationError

    raise NotFoundError('Project', 42)
    raise ValidationError('Completion must be between 0 and 100',
                          details={'completion': 150})
"""
from typing import Optional


class PortalError(Exception):
    """Base class for all errors the portal reports to the caller."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Build the JSON error body."""
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(PortalError):
    """Input violated a rule. Raised before anything is written."""

    status_code = 400


class AuthenticationError(PortalError):
    """Missing, expired or malformed bearer token."""

    status_code = 401

    def __init__(self, message: str = 'Authentication required') -> None:
        super().__init__(message)


class PermissionDeniedError(PortalError):
    """An authorization policy check returned False."""

    status_code = 403

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f'Not permitted to {action}')


class NotFoundError(PortalError):
    """A requested row does not exist (or is not visible to the caller)."""

    status_code = 404

    def __init__(self, resource: str, resource_id=None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = resource
        if resource_id is not None:
            msg += f' {resource_id}'
        super().__init__(f'{msg} not found')


class ConflictError(PortalError):
    """The row changed underneath the caller (stale phase version)."""

    status_code = 409


class EmailConflictError(ConflictError):
    """A new-client email already belongs to a non-client account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(
            f'Email {email} is already associated with a non-client account',
            details={'client_email': email},
        )


class RemoteCallError(PortalError):
    """The data store or blob storage failed; the change was rolled back."""

    status_code = 502


class IdentityUnavailableError(PortalError):
    """The profile store failed while resolving the caller's identity."""

    status_code = 503

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__('Could not load user profile, try again shortly')
