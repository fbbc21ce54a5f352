"""
Centralized error handling for the Directory Gateway API.

Error Hierarchy:
- APIError (4xx/5xx): Expected errors with messages safe to expose to clients
- InternalError (5xx): Unexpected errors - never expose internal details

Credential failures (InvalidCredentialsError) never say whether the user
exists. Infrastructure failures (DirectoryError, ManagementApiError) carry a
classified ``cause`` so callers can tell a refused connection from a timeout
or an authorization failure.

Usage:
    from core.errors import NotFoundError

    # Expected errors - raise with a safe message; the handlers
    # registered by register_error_handlers render the JSON body
    raise NotFoundError(f"User {uid} not found")
"""

import logging
import uuid

from flask import jsonify

logger = logging.getLogger(__name__)


# =============================================================================
# Exception Classes (Expected Errors)
# =============================================================================

class APIError(Exception):
    """
    Base class for expected API errors.
    Messages are safe to expose to clients.
    """
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404


class ValidationError(APIError):
    """Request validation failed: missing fields, password too short (400)."""
    status_code = 400


class PermissionDeniedError(APIError):
    """Permission denied (403)."""
    status_code = 403


class AuthenticationError(APIError):
    """Missing or invalid session token (401)."""
    status_code = 401


class InvalidCredentialsError(AuthenticationError):
    """Wrong login id or password. Never reveals which."""


class InvalidOrExpiredChallengeError(AuthenticationError):
    """Second-factor challenge token is malformed, expired or already used."""


class InvalidCodeError(APIError):
    """Second-factor code does not match the shared secret."""
    status_code = 400


class NotConfiguredError(APIError):
    """First-run setup has not been completed (503)."""
    status_code = 503

    def __init__(self, message: str = "System is not configured. Complete setup first."):
        super().__init__(message)


class BackendError(APIError):
    """A backend (directory or management API) failed or rejected a call (502)."""
    status_code = 502

    def __init__(self, message: str, cause: str = "unknown", status_code: int = None):
        super().__init__(message, status_code)
        self.cause = cause


class DirectoryError(BackendError):
    """Directory unreachable, timed out, or rejected an administrative operation."""


class ManagementApiError(BackendError):
    """Management API unreachable or rejected a call; backend message passed through."""


# =============================================================================
# Internal Error (5xx - Never Expose)
# =============================================================================

class InternalError(Exception):
    """
    Unexpected internal errors (5xx status codes).
    Message should NEVER be exposed to clients.
    """
    pass


class CryptoError(InternalError):
    """Ciphertext is malformed or was produced under a different key."""


def register_error_handlers(app):
    """
    Register Flask error handlers for APIError exceptions.

    Call this in the Flask app factory:
        from core.errors import register_error_handlers
        register_error_handlers(app)
    """

    @app.errorhandler(APIError)
    def handle_api_error(e):
        """Handle all APIError subclasses."""
        error_id = str(uuid.uuid4())[:8]
        logger.warning(f"API error: {e}", extra={'error_id': error_id})
        body = {"error": str(e), "error_id": error_id}
        if isinstance(e, BackendError):
            body["cause"] = e.cause
        return jsonify(body), e.status_code

    @app.errorhandler(InternalError)
    def handle_internal(e):
        """Internal errors never leak their message."""
        error_id = str(uuid.uuid4())[:8]
        logger.error(f"Internal error: {e}", extra={'error_id': error_id})
        return jsonify({
            "error": "Internal server error",
            "error_id": error_id
        }), 500

