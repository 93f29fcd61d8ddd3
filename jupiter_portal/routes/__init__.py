"""Flask blueprints package.

This package contains all route blueprints for the application.
Each blueprint handles a specific area of functionality.
"""
import logging

from flask import Flask, jsonify

from jupiter_portal.exceptions import PortalError

logger = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints.

    Called by the app factory to set up all routes.

    Args:
        app: The Flask application instance.
    """
    from jupiter_portal.routes.dashboard import dashboard_bp
    from jupiter_portal.routes.files import files_bp
    from jupiter_portal.routes.phases import phases_bp
    from jupiter_portal.routes.projects import projects_bp
    from jupiter_portal.routes.users import users_bp

    app.register_blueprint(users_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(phases_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(dashboard_bp)


def register_error_handlers(app: Flask) -> None:
    """Translate PortalError subclasses and HTTP errors into JSON bodies."""

    @app.errorhandler(PortalError)
    def handle_portal_error(error: PortalError):
        if error.status_code >= 500:
            logger.error('%s: %s', type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405
