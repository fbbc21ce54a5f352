"""
Health check endpoint for the Directory Gateway API.

Liveness plus the configured flag; never touches the backends.
"""

import logging

from flask import Blueprint, jsonify

from core.timestamps import isonow
from dashboard.context import get_context

logger = logging.getLogger(__name__)

# Create blueprint
health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health():
    """Liveness probe."""
    return jsonify({
        "status": "ok",
        "timestamp": isonow(),
        "is_configured": get_context().gate.is_configured(),
    })
