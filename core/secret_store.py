"""
Envelope encryption for configuration secrets at rest.

One process-wide 256-bit key encrypts the directory bind password, the
management API password and the session-signing secret before they reach the
sidecar document. The key is generated on first use and persisted (mode 0600)
next to the sidecar; every later start reads it back.

Ciphertext format: ``<iv hex>:<AES-256-GCM payload hex>`` with a fresh random
IV per call, so encrypting the same plaintext twice yields different output.
"""
import logging
import os
import threading
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # bytes, AES-256
IV_LENGTH = 12   # bytes, GCM nonce
DELIMITER = ":"


class SecretStore:
    """Symmetric encrypt/decrypt with a lazily created, file-backed key."""

    def __init__(self, key_path: Path):
        self._key_path = Path(key_path)
        self._key: bytes | None = None
        self._lock = threading.Lock()

    @property
    def key_path(self) -> Path:
        return self._key_path

    def _read_key(self) -> bytes:
        raw = self._key_path.read_text().strip()
        try:
            key = bytes.fromhex(raw)
        except ValueError:
            raise CryptoError(f"Key file {self._key_path} is not valid hex")
        if len(key) != KEY_LENGTH:
            raise CryptoError(
                f"Key file {self._key_path} holds {len(key)} bytes, expected {KEY_LENGTH}"
            )
        return key

    def _load_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._read_key()

        key = os.urandom(KEY_LENGTH)
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another process won the race; its key is the one on disk
            return self._read_key()
        with os.fdopen(fd, "w") as f:
            f.write(key.hex())
        logger.info(f"Generated new master key at {self._key_path}")
        return key

    def _get_key(self) -> bytes:
        if self._key is None:
            with self._lock:
                if self._key is None:
                    self._key = self._load_or_create_key()
        return self._key

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string; output differs on every call."""
        iv = os.urandom(IV_LENGTH)
        payload = AESGCM(self._get_key()).encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}{DELIMITER}{payload.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt output of encrypt().

        Raises:
            CryptoError: malformed input or key mismatch
        """
        if not isinstance(ciphertext, str) or DELIMITER not in ciphertext:
            raise CryptoError("Malformed ciphertext: missing delimiter")

        iv_hex, payload_hex = ciphertext.split(DELIMITER, 1)
        try:
            iv = bytes.fromhex(iv_hex)
            payload = bytes.fromhex(payload_hex)
        except ValueError:
            raise CryptoError("Malformed ciphertext: not hex encoded")

        if len(iv) != IV_LENGTH or not payload:
            raise CryptoError("Malformed ciphertext: bad IV or empty payload")

        try:
            plaintext = AESGCM(self._get_key()).decrypt(iv, payload, None)
        except InvalidTag:
            raise CryptoError("Decryption failed: key mismatch or tampered ciphertext")

        return plaintext.decode("utf-8")
