"""
Authentication endpoints for the Directory Gateway API.

Provides password login, the second-factor step and token verification.
"""

import logging

from flask import Blueprint, jsonify, request

from dashboard.auth import decode_session_token, get_token_from_request
from dashboard.context import get_context

logger = logging.getLogger(__name__)

# Create blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


# =============================================================================
# Login / Second Factor / Verification
# =============================================================================

@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Authenticate against the directory.

    Returns a session token, or a challenge token when 2FA is enabled.
    Rate limited (applied at registration).
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "No credentials provided"}), 400

    username = data.get("username")
    password = data.get("password")

    # Type validation - prevent type confusion attacks
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({"error": "Username and password must be strings"}), 400

    if not username or not password:
        return jsonify({"error": "Username and password required"}), 400

    # Length limits
    if len(username) > 100 or len(password) > 200:
        return jsonify({"error": "Credentials exceed maximum length"}), 400

    result = get_context().auth_service().login(username.strip(), password)
    return jsonify(result.to_dict())


@auth_bp.route('/2fa/verify', methods=['POST'])
def verify_second_factor():
    """
    Exchange a challenge token and TOTP code for a session token.
    Rate limited (applied at registration).
    """
    data = request.get_json(silent=True) or {}
    challenge = data.get("tempToken") or data.get("temp_token") or ""
    code = str(data.get("code") or "").strip()

    if not challenge or not code:
        return jsonify({"error": "Missing tempToken or code"}), 400

    result = get_context().auth_service().verify_second_factor(challenge, code)
    return jsonify(result.to_dict())


@auth_bp.route('/verify', methods=['GET'])
def verify_token():
    """Verify if a token is valid (for frontend validation)."""
    token = get_token_from_request()
    if not token:
        return jsonify({"valid": False, "error": "No token provided"}), 401

    claims = decode_session_token(token, get_context().session_secret())
    if claims:
        return jsonify({"valid": True, "user": claims.to_user_dict()})
    else:
        return jsonify({"valid": False, "error": "Invalid or expired token"}), 401
