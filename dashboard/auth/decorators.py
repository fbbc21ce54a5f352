"""
Flask route decorators for authentication and authorization.

Provides:
- session_required: Require a valid session token
- admin_required: Require a session token carrying the administrator flag

Tokens are verified with the session secret from the system configuration,
so every decorated route also requires setup to be complete.
"""
from functools import wraps

from flask import g, jsonify

from .tokens import get_token_from_request, decode_session_token


def _load_claims():
    # Import here to avoid circular dependency
    from dashboard.context import get_context

    token = get_token_from_request()
    if not token:
        return None, (jsonify({"error": "Missing authorization token"}), 401)

    claims = decode_session_token(token, get_context().session_secret())
    if claims is None:
        return None, (jsonify({"error": "Invalid or expired token"}), 401)
    return claims, None


def _store_claims(claims) -> None:
    g.current_user = claims.uid
    g.current_claims = claims
    g.is_admin = claims.is_admin


def session_required(f):
    """Decorator to require valid session token for endpoint.

    Sets g.current_user, g.current_claims, g.is_admin on success.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        claims, error = _load_claims()
        if error:
            return error
        _store_claims(claims)
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator to require the administrator flag in the session token."""
    @wraps(f)
    @session_required
    def decorated(*args, **kwargs):
        if not g.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated

