"""
Self-service endpoints for the signed-in user.

Profile, password, second factor enrollment and the user's own activity log.
All routes require a session token.
"""

import logging

from flask import Blueprint, jsonify, request, g

from core.errors import NotFoundError, ValidationError
from dashboard.auth import session_required
from dashboard.auth.config import AUDIT_UPDATE_PROFILE
from dashboard.context import get_context

logger = logging.getLogger(__name__)

user_bp = Blueprint('user', __name__, url_prefix='/api/user')


@user_bp.before_request
@session_required
def require_session():
    """All user routes require a session."""
    pass


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# =============================================================================
# Profile
# =============================================================================

@user_bp.route('/profile', methods=['GET'])
def get_profile():
    """Directory view of the current user."""
    user = get_context().directory().find_user(g.current_user)
    if user is None:
        raise NotFoundError("User not found")
    return jsonify(user.to_dict())


@user_bp.route('/profile', methods=['PUT'])
def update_profile():
    data = _json_body()
    mail = data.get("mail") or None
    display_name = data.get("displayName") or data.get("cn") or None

    if mail is None and display_name is None:
        return jsonify({"message": "Nothing to update"})

    ctx = get_context()
    backend = ctx.reconciliation().update_profile(g.current_user, mail, display_name)
    ctx.store.append_audit(g.current_user, AUDIT_UPDATE_PROFILE, f"User updated profile via {backend}")
    return jsonify({"message": "Profile updated", "source": backend})


# =============================================================================
# Password
# =============================================================================

@user_bp.route('/password', methods=['POST'])
def change_password():
    data = _json_body()
    current = data.get("currentPassword") or data.get("current_password") or ""
    new = data.get("newPassword") or data.get("new_password") or ""

    if not current:
        raise ValidationError("Current password is required")

    get_context().auth_service().change_password(g.current_user, current, new)
    return jsonify({"message": "Password changed successfully"})


# =============================================================================
# Second factor
# =============================================================================

@user_bp.route('/2fa/setup', methods=['POST'])
def setup_second_factor():
    enrollment = get_context().auth_service().setup_second_factor(g.current_user)
    return jsonify(enrollment.to_dict())


@user_bp.route('/2fa/enable', methods=['POST'])
def enable_second_factor():
    data = _json_body()
    secret = str(data.get("secret") or "")
    code = str(data.get("code") or "").strip()

    get_context().auth_service().enable_second_factor(g.current_user, secret, code)
    return jsonify({"message": "2FA enabled"})


# =============================================================================
# Activity log
# =============================================================================

@user_bp.route('/logs', methods=['GET'])
def get_logs():
    limit = request.args.get('limit', type=int)
    events = get_context().store.get_audit_events(uid=g.current_user, limit=limit)
    return jsonify([e.to_dict() for e in events])
