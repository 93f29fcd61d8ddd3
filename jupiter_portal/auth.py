"""Request identity hook.

Parses ``Authorization: Bearer <token>`` on every request, resolves it
to an Identity and stores it on ``g.identity``. Routes read it with
``current_identity()`` and pass it explicitly to the services.
"""
from functools import wraps

from flask import Flask, g, request

from jupiter_portal.exceptions import AuthenticationError
from jupiter_portal.services.identity import Identity, resolve_identity

# Paths served without resolving an identity
SKIP_PATHS = ('/health',)


def _bearer_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[7:].strip() or None


def init_identity(app: Flask) -> None:
    """Register the identity resolver as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.identity = Identity.anonymous()
        if request.path in SKIP_PATHS:
            return
        g.identity = resolve_identity(_bearer_token())


def current_identity() -> Identity:
    return g.get('identity') or Identity.anonymous()


def login_required(view):
    """Reject anonymous callers with AuthenticationError (401)."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_identity().is_authenticated:
            raise AuthenticationError()
        return view(*args, **kwargs)

    return wrapper
