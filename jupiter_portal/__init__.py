"""Flask application factory.

This module contains the create_app factory function that initializes
and configures the Jupiter Automation project portal.
"""
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from jupiter_portal.config import Config

# Initialize extensions without app context
# These will be initialized with the app in create_app()
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class: type = Config) -> Flask:
    """Create and configure the Flask application.

    Uses the application factory pattern to allow creating multiple
    app instances with different configurations (e.g., for testing).

    Args:
        config_class: Configuration class to use. Defaults to Config.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    from jupiter_portal.logging_config import configure_logging
    configure_logging(app)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported before create_all/migrations see the metadata
    from jupiter_portal import models  # noqa: F401

    from jupiter_portal.auth import init_identity
    from jupiter_portal.routes import register_blueprints, register_error_handlers

    init_identity(app)
    register_error_handlers(app)
    register_blueprints(app)

    # Simple health check route
    @app.route('/health')
    def health_check():
        return {'status': 'healthy'}

    return app
