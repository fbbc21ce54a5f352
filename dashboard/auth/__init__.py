"""
Dashboard authentication module.

Public API:
- Decorators: session_required, admin_required
- Service: AuthService, is_administrator
- Tokens: create_session_token, decode_session_token, create_challenge_token,
  decode_challenge_token, ChallengeLedger
- TOTP: create_enrollment, verify_code

Internal modules should import from submodules directly.
External callers should use this facade.

Import Rules:
- External callers: Use `from dashboard.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
- Ban: `from dashboard.auth import X` inside auth submodules (causes facade import)
"""

# =============================================================================
# Decorators (most commonly used)
# =============================================================================
from .decorators import (
    session_required,
    admin_required,
)

# =============================================================================
# Tokens
# =============================================================================
from .tokens import (
    create_session_token,
    decode_session_token,
    create_challenge_token,
    decode_challenge_token,
    get_token_from_request,
    ChallengeLedger,
)

# =============================================================================
# Authentication Service
# =============================================================================
from .identity import AuthService, is_administrator

# =============================================================================
# Password Utilities
# =============================================================================
from .passwords import validate_password_strength

# =============================================================================
# MFA
# =============================================================================
from .mfa import create_enrollment, verify_code

# =============================================================================
# Types
# =============================================================================
from .types import LoginResult, SecondFactorEnrollment, SessionClaims

# =============================================================================
# Configuration (for external config needs)
# =============================================================================
from .config import (
    SESSION_EXPIRATION_HOURS,
    CHALLENGE_EXPIRATION_MINUTES,
    PASSWORD_MIN_LENGTH,
    ADMIN_GROUPS,
)

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Decorators
    "session_required",
    "admin_required",

    # Tokens
    "create_session_token",
    "decode_session_token",
    "create_challenge_token",
    "decode_challenge_token",
    "get_token_from_request",
    "ChallengeLedger",

    # Service
    "AuthService",
    "is_administrator",

    # Passwords
    "validate_password_strength",

    # MFA
    "create_enrollment",
    "verify_code",

    # Types
    "LoginResult",
    "SecondFactorEnrollment",
    "SessionClaims",

    # Config
    "SESSION_EXPIRATION_HOURS",
    "CHALLENGE_EXPIRATION_MINUTES",
    "PASSWORD_MIN_LENGTH",
    "ADMIN_GROUPS",
]
