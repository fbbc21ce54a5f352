"""
TOTP second factor (RFC 6238) compatible with Google Authenticator, Authy and
other TOTP apps.

Handles:
- Secret generation and provisioning URI
- QR code rendering for enrollment (PNG data URL)
- Code verification with one step of clock drift either side

Persistence of the enabled flag and secret is the sidecar's job; nothing in
this module writes state.
"""
import base64
from io import BytesIO

import pyotp
import qrcode

from .config import MFA_ISSUER_NAME, TOTP_VALID_WINDOW
from .types import SecondFactorEnrollment


def generate_secret() -> str:
    """Random base32 TOTP secret."""
    return pyotp.random_base32()


def provisioning_uri(uid: str, secret: str, issuer: str = MFA_ISSUER_NAME) -> str:
    """otpauth:// URI for authenticator apps."""
    return pyotp.TOTP(secret).provisioning_uri(name=uid, issuer_name=issuer)


def render_qr_code(uri: str) -> str:
    """Render uri as a base64 PNG data URL."""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    qr_base64 = base64.b64encode(buffer.getvalue()).decode()

    return f"data:image/png;base64,{qr_base64}"


def create_enrollment(uid: str, issuer: str = MFA_ISSUER_NAME) -> SecondFactorEnrollment:
    """Begin 2FA setup for uid: fresh secret, URI and QR code."""
    secret = generate_secret()
    uri = provisioning_uri(uid, secret, issuer)
    return SecondFactorEnrollment(secret=secret, provisioning_uri=uri, qr_code=render_qr_code(uri))


def verify_code(secret: str, code: str, valid_window: int = TOTP_VALID_WINDOW) -> bool:
    """Check a 6-digit code against secret.

    Args:
        secret: Base32 TOTP secret
        code: Code typed by the user (surrounding whitespace ignored)
        valid_window: Accepted steps of clock drift either side

    Returns:
        True if the code matches
    """
    if not secret or not code:
        return False
    code = str(code).strip().replace(" ", "")
    if not code.isdigit():
        return False
    try:
        return pyotp.TOTP(secret).verify(code, valid_window=valid_window)
    except (TypeError, ValueError):
        # Malformed base32 secret supplied by the client
        return False
