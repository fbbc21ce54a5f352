"""
Flask extension instances.

Centralized extension objects initialized via init_extensions(app).
Import these objects in blueprints instead of creating new instances.
"""

import logging

from flask import request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config.settings import get_settings

logger = logging.getLogger(__name__)

# Extension instances (uninitialized until init_extensions is called)
limiter = None  # Created in init_extensions with full config


def _get_rate_limit_key():
    """
    Custom rate limit key function.
    Uses the session uid if a valid session token is present, otherwise IP address.
    """
    from dashboard.auth import get_token_from_request, decode_session_token
    from dashboard.context import get_context

    token = get_token_from_request()
    if token:
        gate = get_context().gate
        config = gate.current_config() if gate.is_configured() else None
        if config is not None:
            claims = decode_session_token(token, config.session_secret)
            if claims:
                return f"user:{claims.uid}"
    return f"ip:{get_remote_address()}"


def init_extensions(app):
    """Initialize all Flask extensions with the app instance.

    Args:
        app: Flask application instance
    """
    settings = get_settings()

    # CORS
    CORS(app, origins=settings.allowed_origins)

    # Rate limiter - must be created with all config, then assigned to module-level
    global limiter
    limiter = Limiter(
        app=app,
        key_func=_get_rate_limit_key,
        default_limits=[settings.rate_limit.default],
        storage_uri=settings.rate_limit.storage,
        strategy="moving-window",
        enabled=not (settings.testing or app.config.get("TESTING", False)),
    )

    @app.errorhandler(429)
    def ratelimit_handler(e):
        logger.warning(f"Rate limit exceeded on {request.path}: {e.description}")
        return {
            "error": "Rate limit exceeded",
            "message": str(e.description),
            "retry_after": e.get_response().headers.get("Retry-After", 60)
        }, 429
