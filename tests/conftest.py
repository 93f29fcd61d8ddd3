"""Pytest fixtures for the project portal tests.

This module provides fixtures for setting up the test database and
application context, user and project factories, and signed bearer
tokens. Uses an in-memory SQLite database and a temporary storage
directory so tests never touch development data.
"""
import itertools
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from jupiter_portal import create_app, db
from jupiter_portal.config import Config
from jupiter_portal.models import Phase, PhaseStatus, Profile, Project, ProjectStatus, Role
from jupiter_portal.services.identity import Identity
from jupiter_portal.services.project_service import generate_project_number
from jupiter_portal.services.templates import build_phase_specs

JWT_SECRET = 'test-jwt-secret'
JWT_AUDIENCE = 'authenticated'


class TestConfig(Config):
    """Test configuration using in-memory SQLite database.

    This ensures tests are isolated from development data and run quickly.
    """
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'test-secret-key'
    AUTH_JWT_SECRET = JWT_SECRET
    AUTH_JWT_AUDIENCE = JWT_AUDIENCE
    STORAGE_PUBLIC_URL = 'http://files.test/storage'
    MAX_UPLOAD_BYTES = 1024
    WORKFLOW_SYNC_URL = ''
    LOG_LEVEL = 'WARNING'


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create and configure a test application instance.

    Tables are created fresh for each test function and files are
    stored under the test's temporary directory.

    Yields:
        Flask application configured for testing.
    """
    app = create_app(TestConfig)
    app.config['STORAGE_DIR'] = str(tmp_path / 'storage')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Provide a database session for tests."""
    with app.app_context():
        yield db.session


@pytest.fixture
def make_user(app):
    """Factory creating a profile and returning the matching Identity."""
    counter = itertools.count(1)

    def _make_user(role: Role = Role.CLIENT, email: str = None, full_name: str = None):
        n = next(counter)
        email = email or f'{role.value}{n}@example.com'
        full_name = full_name or f'{role.value.replace("_", " ").title()} {n}'
        profile = Profile(id=str(uuid.uuid4()), email=email, full_name=full_name, role=role.value)
        db.session.add(profile)
        db.session.commit()
        return Identity(user_id=profile.id, role=role, display_name=full_name, email=email)

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(Role.STAFF_ADMIN)


@pytest.fixture
def manager(make_user):
    return make_user(Role.STAFF_MANAGER)


@pytest.fixture
def drafter(make_user):
    return make_user(Role.STAFF_DRAFTER)


@pytest.fixture
def client_user(make_user):
    return make_user(Role.CLIENT)


@pytest.fixture
def make_project(app):
    """Factory inserting a project with template phases; returns its id.

    Keyword arguments override Project columns. ``phase_states`` is an
    optional list of (status, completion) applied to the phases in order.
    """
    def _make_project(template: str = 'standard', phase_states: list = None, **kwargs):
        specs = build_phase_specs(template)
        defaults = {
            'project_number': generate_project_number(),
            'project_name': 'Test Residence',
            'type': 'residential_single',
            'address': '100 Test St',
            'status': ProjectStatus.IN_PROGRESS,
            'current_phase_index': 0,
            'template_used': template,
            'total_estimated_hours': sum(s['estimated_hours'] for s in specs),
        }
        defaults.update(kwargs)
        project = Project(**defaults)
        states = phase_states or []
        project.phases = [
            Phase(
                position=i,
                status=states[i][0] if i < len(states) else PhaseStatus.PENDING,
                completion=states[i][1] if i < len(states) else 0,
                actual_hours=0,
                **spec,
            )
            for i, spec in enumerate(specs)
        ]
        db.session.add(project)
        db.session.commit()
        return project.id

    return _make_project


@pytest.fixture
def make_token():
    """Factory producing signed bearer tokens like the auth provider's."""
    def _make_token(user_id: str, email: str = None, expires_in: int = 3600,
                    secret: str = JWT_SECRET, audience: str = JWT_AUDIENCE) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            'sub': user_id,
            'email': email,
            'aud': audience,
            'iat': now,
            'exp': now + timedelta(seconds=expires_in),
        }
        return jwt.encode(claims, secret, algorithm='HS256')

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    """Factory returning Authorization headers for an Identity."""
    def _auth_headers(identity: Identity) -> dict:
        return {'Authorization': f'Bearer {make_token(identity.user_id, identity.email)}'}

    return _auth_headers
