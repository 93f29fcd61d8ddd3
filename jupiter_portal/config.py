"""Application configuration module.

Loads configuration from environment variables with sensible defaults
for development.
"""
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class.

    Reads configuration from environment variables. All sensitive values
    should be set via environment variables, never hardcoded.
    """

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.environ.get('DEBUG', 'false').lower() in ('true', '1', 'yes')

    # Database settings
    # Default to SQLite for local development, PostgreSQL for production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///jupiter_portal.db'
    )

    # Handle hosted postgres:// vs postgresql:// URL scheme
    if SQLALCHEMY_DATABASE_URI.startswith('postgres://'):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace(
            'postgres://', 'postgresql://', 1
        )

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Auth provider settings
    # Access tokens are issued by the hosted auth provider and signed
    # with a shared HS256 secret.
    AUTH_JWT_SECRET = os.environ.get('AUTH_JWT_SECRET', 'dev-jwt-secret-change-in-production')
    AUTH_JWT_AUDIENCE = os.environ.get('AUTH_JWT_AUDIENCE', 'authenticated')

    # Blob storage
    STORAGE_DIR = os.environ.get('STORAGE_DIR', 'var/storage')
    STORAGE_PUBLIC_URL = os.environ.get('STORAGE_PUBLIC_URL', 'http://localhost:5000/storage')
    MAX_UPLOAD_BYTES = int(os.environ.get('MAX_UPLOAD_BYTES', 100 * 1024 * 1024))

    # External workflow sync (empty URL disables it)
    WORKFLOW_SYNC_URL = os.environ.get('WORKFLOW_SYNC_URL', '')
    WORKFLOW_SYNC_TOKEN = os.environ.get('WORKFLOW_SYNC_TOKEN', '')
    WORKFLOW_SYNC_TIMEOUT = float(os.environ.get('WORKFLOW_SYNC_TIMEOUT', 5))
    WORKFLOW_SYNC_MAX_ATTEMPTS = int(os.environ.get('WORKFLOW_SYNC_MAX_ATTEMPTS', 2))

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', '')

    # Application settings
    APP_NAME = 'Jupiter Automation Project Portal'
