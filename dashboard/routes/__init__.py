"""
Route blueprints for the Directory Gateway API.
"""

from .health import health_bp
from .setup_routes import setup_bp
from .auth_routes import auth_bp
from .user_routes import user_bp
from .admin import admin_bp

__all__ = ['health_bp', 'setup_bp', 'auth_bp', 'user_bp', 'admin_bp']
