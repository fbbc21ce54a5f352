"""
First-run setup endpoints.

Anonymous until the system is configured; afterwards re-running setup needs
an administrator session.
"""

import logging

from flask import Blueprint, jsonify, request, g

from core.errors import AuthenticationError, PermissionDeniedError
from core.setup_service import SetupRequest
from dashboard.auth import decode_session_token, get_token_from_request
from dashboard.context import get_context

logger = logging.getLogger(__name__)

setup_bp = Blueprint('setup', __name__, url_prefix='/api/setup')


def _require_admin_once_configured(ctx) -> str:
    """Returns the acting uid ("setup" for the anonymous first run)."""
    if not ctx.gate.is_configured():
        return "setup"

    token = get_token_from_request()
    claims = decode_session_token(token, ctx.session_secret()) if token else None
    if claims is None:
        raise AuthenticationError("System is already configured; administrator login required")
    if not claims.is_admin:
        raise PermissionDeniedError("Admin access required")
    g.current_user = claims.uid
    return claims.uid


@setup_bp.route('/status', methods=['GET'])
def setup_status():
    return jsonify({"is_configured": get_context().gate.is_configured()})


@setup_bp.route('', methods=['POST'])
def run_setup():
    """Validate the submitted backends and save the configuration."""
    ctx = get_context()
    actor = _require_admin_once_configured(ctx)

    data = request.get_json(silent=True)
    setup_request = SetupRequest.from_dict(data if isinstance(data, dict) else {})
    ctx.setup_service().run(setup_request, actor=actor)

    logger.info(f"Setup completed by {actor}")
    return jsonify({"message": "Setup completed successfully", "is_configured": True})
