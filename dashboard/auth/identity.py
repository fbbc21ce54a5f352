"""
Authentication and session service.

Login state machine:

    START --password ok, 2FA off--> session token             (audit LOGIN)
    START --password ok, 2FA on---> challenge token (5 min)
    START --password bad----------> InvalidCredentialsError
    challenge --code ok-----------> session token             (audit LOGIN_2FA)
    challenge --bad/expired/used--> InvalidOrExpiredChallengeError / InvalidCodeError

The password is checked once, by binding to the directory as the user. The
challenge token carries that fact forward; the second step never sees the
password again.
"""
import logging
from typing import Iterable, Optional

from core.errors import (
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidOrExpiredChallengeError,
    ValidationError,
)
from core.types import DirectoryUser, UserSecurityProfile

from .config import (
    ADMIN_GROUPS,
    RESERVED_ADMIN_UID,
    PASSWORD_MIN_LENGTH,
    MFA_ISSUER_NAME,
    AUDIT_LOGIN,
    AUDIT_LOGIN_2FA,
    AUDIT_ENABLE_2FA,
    AUDIT_CHANGE_PASSWORD,
)
from .mfa import create_enrollment, verify_code
from .passwords import validate_password_strength
from .tokens import (
    ChallengeLedger,
    create_challenge_token,
    create_session_token,
    decode_challenge_token,
)
from .types import LoginResult, SecondFactorEnrollment

logger = logging.getLogger(__name__)


def _leading_rdn_value(dn: str) -> Optional[str]:
    """'cn=admin,ou=groups,dc=x' -> 'admin'; None unless the first RDN is a cn."""
    first = dn.split(",", 1)[0].strip()
    attribute, sep, value = first.partition("=")
    if not sep or attribute.strip().lower() != "cn":
        return None
    return value.strip().lower()


def is_administrator(
    user: DirectoryUser,
    admin_groups: Iterable[str] = ADMIN_GROUPS,
    reserved_uid: str = RESERVED_ADMIN_UID,
) -> bool:
    """Administrator flag embedded in the session token.

    True when any group DN's leading RDN is ``cn=<admin group>``, any
    management group's displayName is an admin group (case-insensitive), or
    the uid is the reserved administrator id.
    """
    admin_groups = {g.lower() for g in admin_groups}

    if reserved_uid and user.uid == reserved_uid:
        return True

    for dn in user.member_of:
        if _leading_rdn_value(dn or "") in admin_groups:
            return True

    for group in user.groups:
        name = (group.get("displayName") or "").strip().lower()
        if name and name in admin_groups:
            return True

    return False


class AuthService:
    """Login, second factor and self-service password operations for one configuration."""

    def __init__(
        self,
        directory,
        store,
        session_secret: str,
        ledger: Optional[ChallengeLedger] = None,
        admin_groups: Iterable[str] = ADMIN_GROUPS,
        reserved_admin_uid: str = RESERVED_ADMIN_UID,
        password_min_length: int = PASSWORD_MIN_LENGTH,
        issuer_name: str = MFA_ISSUER_NAME,
    ):
        self.directory = directory
        self.store = store
        self._session_secret = session_secret
        self.ledger = ledger if ledger is not None else ChallengeLedger()
        self.admin_groups = tuple(admin_groups)
        self.reserved_admin_uid = reserved_admin_uid
        self.password_min_length = password_min_length
        self.issuer_name = issuer_name

    # =========================================================================
    # Sessions
    # =========================================================================

    def _issue_session(self, user: DirectoryUser) -> LoginResult:
        is_admin = is_administrator(user, self.admin_groups, self.reserved_admin_uid)
        token = create_session_token(
            uid=user.uid,
            cn=user.display_name,
            mail=user.mail,
            is_admin=is_admin,
            secret=self._session_secret,
        )
        user_data = user.to_dict()
        user_data["isAdmin"] = is_admin
        return LoginResult(token=token, user=user_data)

    def login(self, uid: str, password: str) -> LoginResult:
        """First authentication step.

        Raises:
            InvalidCredentialsError: unknown user or wrong password (same message)
            DirectoryError: directory unreachable
        """
        user = self.directory.authenticate(uid, password)
        if user is None:
            logger.info(f"Login rejected for {uid}")
            raise InvalidCredentialsError("Invalid credentials")

        profile = self.store.get_security_profile(user.uid)
        if profile.two_factor_enabled:
            logger.info(f"Password accepted for {user.uid}, awaiting second factor")
            return LoginResult(
                require_2fa=True,
                challenge_token=create_challenge_token(user.uid, self._session_secret),
            )

        result = self._issue_session(user)
        self.store.append_audit(user.uid, AUDIT_LOGIN, "User logged in")
        return result

    def verify_second_factor(self, challenge_token: str, code: str) -> LoginResult:
        """Exchange a challenge token and a TOTP code for a session.

        Raises:
            InvalidOrExpiredChallengeError: bad signature, expired, wrong type,
                already used, or 2FA no longer enabled
            InvalidCodeError: code mismatch (401)
        """
        payload = decode_challenge_token(challenge_token or "", self._session_secret)
        if payload is None:
            raise InvalidOrExpiredChallengeError("Invalid or expired 2FA session")

        uid = payload.get("uid") or payload.get("sub")
        jti = payload.get("jti") or ""
        if not jti or self.ledger.is_consumed(jti):
            logger.warning(f"Replayed 2FA challenge for {uid}")
            raise InvalidOrExpiredChallengeError("Invalid or expired 2FA session")

        profile = self.store.get_security_profile(uid)
        if not profile.two_factor_enabled or not profile.two_factor_secret:
            raise InvalidOrExpiredChallengeError("Invalid or expired 2FA session")

        if not verify_code(profile.two_factor_secret, code):
            logger.info(f"Wrong 2FA code for {uid}")
            raise InvalidCodeError("Invalid 2FA code", status_code=401)

        if not self.ledger.consume(jti, payload["exp"]):
            raise InvalidOrExpiredChallengeError("Invalid or expired 2FA session")

        user = self.directory.find_user(uid)
        if user is None:
            raise InvalidOrExpiredChallengeError("Invalid or expired 2FA session")

        result = self._issue_session(user)
        self.store.append_audit(uid, AUDIT_LOGIN_2FA, "User logged in with 2FA")
        return result

    # =========================================================================
    # Second factor enrollment
    # =========================================================================

    def setup_second_factor(self, uid: str) -> SecondFactorEnrollment:
        """Fresh secret and QR code for uid. Nothing is stored yet."""
        return create_enrollment(uid, self.issuer_name)

    def enable_second_factor(self, uid: str, secret: str, code: str) -> None:
        """Persist the secret only after the user proves they can generate codes.

        Raises:
            ValidationError: secret or code missing
            InvalidCodeError: code does not match secret; nothing stored
        """
        if not secret or not code:
            raise ValidationError("secret and code are required")
        if not verify_code(secret, code):
            raise InvalidCodeError("Invalid code")

        self.store.save_security_profile(
            UserSecurityProfile(uid=uid, two_factor_enabled=True, two_factor_secret=secret)
        )
        self.store.append_audit(uid, AUDIT_ENABLE_2FA, "2FA enabled")
        logger.info(f"2FA enabled for {uid}")

    # =========================================================================
    # Password change
    # =========================================================================

    def change_password(self, uid: str, current_password: str, new_password: str) -> None:
        """Self-service password change through the directory.

        Raises:
            InvalidCredentialsError: current password wrong
            ValidationError: new password too short
        """
        user = self.directory.authenticate(uid, current_password)
        if user is None:
            raise InvalidCredentialsError("Current password is incorrect")

        valid, message = validate_password_strength(new_password or "", self.password_min_length)
        if not valid:
            raise ValidationError(message)

        self.directory.change_password(user.dn, new_password)
        self.store.append_audit(uid, AUDIT_CHANGE_PASSWORD, "User changed password")
