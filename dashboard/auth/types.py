"""
Auth domain types - no dependencies on other auth modules.

NOTE: Keep this minimal. Only add types here if they are:
1. Used by 2+ auth submodules, AND
2. Would otherwise cause circular imports
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionClaims:
    """Decoded session token payload (immutable)."""
    uid: str
    cn: str
    mail: str
    is_admin: bool
    jti: str
    iat: int
    exp: int

    @classmethod
    def from_payload(cls, payload: dict) -> "SessionClaims":
        return cls(
            uid=payload.get("uid") or payload.get("sub"),
            cn=payload.get("cn") or "",
            mail=payload.get("mail") or "",
            is_admin=bool(payload.get("is_admin")),
            jti=payload.get("jti") or "",
            iat=payload.get("iat") or 0,
            exp=payload.get("exp") or 0,
        )

    def to_user_dict(self) -> dict:
        return {"uid": self.uid, "cn": self.cn, "mail": self.mail, "is_admin": self.is_admin}


@dataclass(frozen=True)
class LoginResult:
    """Either a session (token set) or a pending second factor (challenge set)."""
    token: Optional[str] = None
    user: Optional[dict] = None
    require_2fa: bool = False
    challenge_token: Optional[str] = None

    def to_dict(self) -> dict:
        if self.require_2fa:
            return {"require2fa": True, "tempToken": self.challenge_token}
        return {"token": self.token, "user": self.user}


@dataclass(frozen=True)
class SecondFactorEnrollment:
    """Output of 2FA setup. Nothing is persisted until enable."""
    secret: str
    provisioning_uri: str
    qr_code: str  # data:image/png;base64,...

    def to_dict(self) -> dict:
        return {
            "secret": self.secret,
            "otpauthUrl": self.provisioning_uri,
            "qrCode": self.qr_code,
        }
