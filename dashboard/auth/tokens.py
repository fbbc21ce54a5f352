"""
JWT session and challenge token creation and validation.

Handles:
- Session token creation and decoding (type "session")
- Second-factor challenge tokens (type "challenge", short-lived)
- Consumed-challenge ledger so a challenge can only be exchanged once

Both token types are signed with the session secret from the system
configuration, so neither can be substituted for the other without the
``type`` check failing.
"""
import logging
import threading
import time
import uuid
from datetime import timedelta

import jwt
from flask import request

from core.timestamps import now

from .config import (
    JWT_ALGORITHM,
    SESSION_EXPIRATION_HOURS,
    CHALLENGE_EXPIRATION_MINUTES,
)
from .types import SessionClaims

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "session"
CHALLENGE_TOKEN_TYPE = "challenge"


# =============================================================================
# Token Creation
# =============================================================================

def create_session_token(
    uid: str,
    cn: str,
    mail: str,
    is_admin: bool,
    secret: str,
    expiration_hours: int = SESSION_EXPIRATION_HOURS,
) -> str:
    """Create a session token for an authenticated user.

    Args:
        uid: Directory login id
        cn: Display name
        mail: Email address
        is_admin: Administrator flag, the only authorization signal for admin routes
        secret: Session-signing secret from the system configuration

    Returns:
        Encoded JWT session token
    """
    issued = now()
    payload = {
        "sub": uid,
        "uid": uid,
        "cn": cn,
        "mail": mail,
        "is_admin": is_admin,
        "jti": str(uuid.uuid4()),
        "type": SESSION_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(hours=expiration_hours),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_challenge_token(
    uid: str,
    secret: str,
    expiration_minutes: int = CHALLENGE_EXPIRATION_MINUTES,
) -> str:
    """Create a temporary token proving the password step succeeded.

    Returned instead of a session when 2FA is enabled; it must be exchanged
    together with a TOTP code.
    """
    issued = now()
    payload = {
        "sub": uid,
        "uid": uid,
        "jti": str(uuid.uuid4()),
        "type": CHALLENGE_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(minutes=expiration_minutes),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


# =============================================================================
# Token Decoding/Validation
# =============================================================================

def _decode(token: str, secret: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug(f"Rejected expired {expected_type} token")
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != expected_type:
        return None
    if not (payload.get("uid") or payload.get("sub")):
        return None
    return payload


def decode_session_token(token: str, secret: str) -> SessionClaims | None:
    """Decode and validate a session token.

    Validity is signature + expiry + type; there is no revocation list.

    Returns:
        SessionClaims or None if invalid/expired/wrong type
    """
    payload = _decode(token, secret, SESSION_TOKEN_TYPE)
    return SessionClaims.from_payload(payload) if payload else None


def decode_challenge_token(token: str, secret: str) -> dict | None:
    """Decode and validate a challenge token.

    Returns:
        Payload dict (uid, jti, exp) or None if invalid/expired/wrong type
    """
    return _decode(token, secret, CHALLENGE_TOKEN_TYPE)


def get_token_from_request() -> str | None:
    """Extract JWT token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


# =============================================================================
# Consumed Challenge Ledger
# =============================================================================

class ChallengeLedger:
    """In-process record of challenge jtis already exchanged for a session.

    Entries are dropped once their token would have expired anyway. Not shared
    across worker processes.
    """

    def __init__(self):
        self._consumed: dict[str, float] = {}
        self._lock = threading.Lock()

    def _prune(self, current: float) -> None:
        expired = [jti for jti, exp in self._consumed.items() if exp <= current]
        for jti in expired:
            del self._consumed[jti]

    def consume(self, jti: str, exp: float) -> bool:
        """Mark jti as used. Returns False if it was already consumed."""
        with self._lock:
            self._prune(time.time())
            if jti in self._consumed:
                return False
            self._consumed[jti] = float(exp)
            return True

    def is_consumed(self, jti: str) -> bool:
        with self._lock:
            return jti in self._consumed

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumed)
