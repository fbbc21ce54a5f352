"""
Flask Application Factory.

Creates and configures the Flask app with all extensions and blueprints.
"""

import sys
import uuid
import time
import logging
from pathlib import Path

from flask import Flask, jsonify, request, g

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))  # Project root

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'no-referrer',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
}


def create_app(config=None, context=None):
    """Create and configure the Flask application.

    Args:
        config: Optional dict of config overrides (e.g. {'TESTING': True}).
        context: Optional GatewayContext (tests pass one with stub backends).

    Returns:
        Configured Flask app instance.
    """
    app = Flask(__name__)

    if config:
        app.config.update(config)

    # Configure logging
    from dashboard.logging_config import configure_logging
    configure_logging(app)

    # Initialize extensions (CORS, limiter)
    from dashboard.extensions import init_extensions
    init_extensions(app)

    # Register custom error handlers for APIError hierarchy
    from core.errors import register_error_handlers
    register_error_handlers(app)

    # Secret store, sidecar, configuration gate
    from dashboard.context import init_context
    init_context(app, context)

    # Register blueprints
    _register_blueprints(app)

    # Register middleware
    _register_middleware(app)

    # Register global error handlers
    _register_error_handlers(app)

    return app


def _register_blueprints(app):
    """Register all route blueprints."""
    from config.settings import get_settings
    from dashboard.extensions import limiter

    # Health checks
    from dashboard.routes.health import health_bp
    app.register_blueprint(health_bp)
    limiter.exempt(health_bp)

    # First-run setup
    from dashboard.routes.setup_routes import setup_bp
    limiter.limit(get_settings().rate_limit.auth)(setup_bp)
    app.register_blueprint(setup_bp)

    # Auth (apply auth rate limit)
    from dashboard.routes.auth_routes import auth_bp
    limiter.limit(get_settings().rate_limit.auth)(auth_bp)
    app.register_blueprint(auth_bp)

    # Self-service
    from dashboard.routes.user_routes import user_bp
    app.register_blueprint(user_bp)

    # Administration
    from dashboard.routes.admin import admin_bp
    app.register_blueprint(admin_bp)


def _register_middleware(app):
    """Register request tracking and security middleware."""

    @app.before_request
    def before_request_tracking():
        """Track request start and assign request ID."""
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])
        g.start_time = time.time()

    @app.after_request
    def after_request_tracking(response):
        """Log request completion with timing and add security headers."""
        duration_ms = 0
        if hasattr(g, 'start_time'):
            duration_ms = (time.time() - g.start_time) * 1000

        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if request.path == '/health':
            log_level = logging.DEBUG

        logger.log(
            log_level,
            f"{request.method} {request.path} -> {response.status_code} ({duration_ms:.1f}ms)",
            extra={
                'request_id': getattr(g, 'request_id', 'unknown'),
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(duration_ms, 2),
                'remote_addr': request.remote_addr,
                'user': getattr(g, 'current_user', None),
            }
        )

        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        # Tokens and directory data must never be cached by intermediaries
        if request.path.startswith('/api/'):
            response.headers['Cache-Control'] = 'no-store'

        return response


def _register_error_handlers(app):
    """Register global exception handler."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(Exception)
    def handle_exception(e):
        # Let Flask render 404/405/413 etc. as usual
        if isinstance(e, HTTPException):
            return e
        logger.exception(
            f"Unhandled exception: {str(e)}",
            extra={
                'request_id': getattr(g, 'request_id', 'unknown'),
                'method': request.method,
                'endpoint': request.path,
                'remote_addr': request.remote_addr,
            }
        )
        return jsonify({
            'error': 'Internal server error',
            'request_id': getattr(g, 'request_id', 'unknown'),
        }), 500
