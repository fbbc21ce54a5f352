"""
Auth configuration constants - no dependencies on other auth modules.

All auth configuration is centralized here for easy auditing.
Values are sourced from config.settings (Pydantic BaseSettings).

The session-signing secret is NOT here: it is generated at setup and read
from the system configuration (config.system_config) on every request.
"""
from config.settings import get_settings

_settings = get_settings()
_auth = _settings.auth

# =============================================================================
# JWT Configuration
# =============================================================================

JWT_ALGORITHM = _auth.jwt_algorithm
SESSION_EXPIRATION_HOURS = _auth.session_expiration_hours

# Challenge token expiration (short-lived, between password and TOTP)
CHALLENGE_EXPIRATION_MINUTES = _auth.challenge_expiration_minutes

# =============================================================================
# Password Policy Configuration
# =============================================================================

PASSWORD_MIN_LENGTH = _auth.password_min_length

# =============================================================================
# TOTP Configuration
# =============================================================================

TOTP_VALID_WINDOW = _auth.totp_valid_window
MFA_ISSUER_NAME = _auth.mfa_issuer_name

# =============================================================================
# Administrator Derivation
# =============================================================================

ADMIN_GROUPS = tuple(g.lower() for g in _auth.admin_groups)
RESERVED_ADMIN_UID = _auth.reserved_admin_uid

# =============================================================================
# Audit Actions
# =============================================================================

AUDIT_LOGIN = "LOGIN"
AUDIT_LOGIN_2FA = "LOGIN_2FA"
AUDIT_ENABLE_2FA = "ENABLE_2FA"
AUDIT_CHANGE_PASSWORD = "CHANGE_PASSWORD"
AUDIT_UPDATE_PROFILE = "UPDATE_PROFILE"
AUDIT_CREATE_USER = "CREATE_USER"
AUDIT_UPDATE_USER = "UPDATE_USER"
AUDIT_DELETE_USER = "DELETE_USER"
AUDIT_IMPORT_USERS = "IMPORT_USERS"
