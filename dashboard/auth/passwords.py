"""
Password policy for directory password changes.

Hashing and storage belong to the directory; the gateway only validates
what it is about to send there.
"""
from .config import PASSWORD_MIN_LENGTH

__all__ = [
    "validate_password_strength",
]


def validate_password_strength(password: str, min_length: int = PASSWORD_MIN_LENGTH) -> tuple[bool, str]:
    """Validate a new password against the length policy.

    Args:
        password: Password to validate

    Returns:
        (is_valid, error_message) tuple
    """
    if not password or not password.strip():
        return False, "Password is required"

    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters"

    return True, ""
