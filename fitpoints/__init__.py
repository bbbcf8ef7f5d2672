"""
FitPoints: fitness-center points ledger and staff-verified redemptions.
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.errors import ErrorCode, bad_request, error_response, internal_error, not_found
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, config_overrides: dict = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        config_overrides: Values applied on top of the config class (tests)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    cors_origins = [
        origin.strip()
        for origin in os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000').split(',')
        if origin.strip()
    ]
    CORS(app, origins=cors_origins, allow_headers=['Content-Type', 'Authorization', 'X-Request-ID'])

    from .middleware import init_rate_limiter, init_request_id_tracking
    init_rate_limiter(app)
    init_request_id_tracking(app)

    # Ledger, redemption store and services for this app
    from .services import build_services
    build_services(app)

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background expiry sweep (production or ENABLE_SCHEDULER=true)
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'fitpoints'}

    logger.info(f'FitPoints app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.points import points_bp
    from .api.redemptions import redemptions_bp
    from .api.staff import staff_bp

    app.register_blueprint(points_bp, url_prefix='/api/points')
    app.register_blueprint(redemptions_bp, url_prefix='/api/redemptions')
    app.register_blueprint(staff_bp, url_prefix='/api/staff')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request(f'Bad request: {error.description}')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found('Not found')

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        return internal_error('Internal server error')
