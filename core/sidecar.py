"""
Sidecar store: the only durable state the gateway owns.

One JSON document holding:
- ``config``: the encrypted system configuration record (see config.system_config)
- ``users``: per-uid second factor profiles
- ``logs``: the append-only audit trail

Usage:
    from core.sidecar import SidecarStore

    store = SidecarStore(settings.storage.sidecar_file)
    store.append_audit("alice", "LOGIN", "User logged in")
    profile = store.get_security_profile("alice")
"""

import json
import logging
import os
import re
import threading
import uuid
from pathlib import Path
from typing import Optional

from .timestamps import isonow
from .types import AuditEvent, UserSecurityProfile

logger = logging.getLogger(__name__)

# =============================================================================
# Log Redaction (OWASP A02:2021 - Sensitive Data)
# =============================================================================

ENABLE_LOG_REDACTION = os.getenv("ENABLE_LOG_REDACTION", "true").lower() == "true"
MAX_REDACTION_LENGTH = 10240  # Skip redaction on strings > 10KB (performance)

# Pre-compiled patterns (order matters - more specific first)
REDACTION_PATTERNS = [
    (re.compile(r'\b(password|passwd|pwd)\s*[=:]\s*\S+', re.IGNORECASE), r'\1=***REDACTED***'),
    (re.compile(r'\b(secret|api[_-]?key|auth[_-]?token)\s*[=:]\s*\S+', re.IGNORECASE), r'\1=***REDACTED***'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9\-_\.]{20,}', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(["\'](?:password|secret|token|key)["\'])\s*:\s*["\'][^"\']+["\']', re.IGNORECASE), r'\1: "***REDACTED***"'),
]


def _redact_sensitive(text: str) -> str:
    """
    Remove sensitive data from audit text.

    Returns original text if redaction is disabled, the text is empty, or it
    exceeds MAX_REDACTION_LENGTH.
    """
    if not ENABLE_LOG_REDACTION or not text:
        return text
    if len(text) > MAX_REDACTION_LENGTH:
        return text

    result = text
    for pattern, replacement in REDACTION_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _empty_document() -> dict:
    return {"users": {}, "logs": [], "config": None}


class SidecarStore:
    """
    Thread-safe JSON document store.

    Every mutation rewrites the whole document through a temp file and
    ``os.replace`` so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.RLock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict:
        if not self._path.exists():
            return _empty_document()

        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            backup = self._path.with_name(f"{self._path.name}.corrupt-{uuid.uuid4().hex[:8]}")
            logger.error(f"Failed to read sidecar {self._path}: {e}. Moving it to {backup}")
            os.replace(self._path, backup)
            return _empty_document()

        document = _empty_document()
        document.update(data if isinstance(data, dict) else {})
        return document

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f".{self._path.name}.{uuid.uuid4().hex[:8]}.tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self._path)

    # =========================================================================
    # Second factor profiles
    # =========================================================================

    def get_security_profile(self, uid: str) -> UserSecurityProfile:
        """Return the profile for uid, creating a disabled one on first reference."""
        with self._lock:
            users = self._data.setdefault("users", {})
            if uid not in users:
                users[uid] = UserSecurityProfile(uid=uid).to_dict()
                self._save()
            return UserSecurityProfile.from_dict(users[uid])

    def save_security_profile(self, profile: UserSecurityProfile) -> None:
        with self._lock:
            self._data.setdefault("users", {})[profile.uid] = profile.to_dict()
            self._save()

    # =========================================================================
    # Audit trail
    # =========================================================================

    def append_audit(self, uid: str, action: str, details: str = "") -> AuditEvent:
        """Append an audit event. Details are redacted before storage."""
        event = AuditEvent(
            id=uuid.uuid4().hex,
            timestamp=isonow(),
            uid=uid,
            action=action,
            details=_redact_sensitive(details) if details else "",
        )
        with self._lock:
            self._data.setdefault("logs", []).append(event.to_dict())
            self._save()
        logger.info(f"Audit: {action} by {uid}")
        return event

    def get_audit_events(self, uid: Optional[str] = None, limit: Optional[int] = None) -> list[AuditEvent]:
        """Events in append order, optionally for one actor and capped to the most recent."""
        with self._lock:
            rows = list(self._data.get("logs") or [])

        if uid is not None:
            rows = [r for r in rows if r.get("uid") == uid]
        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []

        return [
            AuditEvent(
                id=r.get("id", ""),
                timestamp=r.get("timestamp", ""),
                uid=r.get("uid", ""),
                action=r.get("action", ""),
                details=r.get("details") or "",
            )
            for r in rows
        ]

    # =========================================================================
    # System configuration record
    # =========================================================================

    def get_config_record(self) -> Optional[dict]:
        with self._lock:
            record = self._data.get("config")
            return dict(record) if record else None

    def save_config_record(self, record: dict) -> None:
        with self._lock:
            self._data["config"] = dict(record)
            self._save()
