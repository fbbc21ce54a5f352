"""
System configuration record and the gate every directory operation goes through.

The record is created by first-run setup (core.setup_service) and stored in the
sidecar with its three secrets encrypted by the secret store. Plaintext secrets
only ever exist in memory.

Usage:
    from config.system_config import ConfigurationGate

    gate = ConfigurationGate(store, secrets)
    config = gate.require_config()   # raises NotConfiguredError before setup
    client = DirectoryClient.from_config(config, timeout=5)
"""

import logging
from dataclasses import dataclass, field, fields
from typing import Optional

from core.errors import NotConfiguredError
from core.secret_store import SecretStore
from core.sidecar import SidecarStore

logger = logging.getLogger(__name__)

# Fields encrypted before they reach the sidecar document
SECRET_FIELDS = ("bind_password", "management_password", "session_secret")


@dataclass(frozen=True)
class SystemConfiguration:
    """Backend coordinates and credentials entered once at setup."""
    ldap_url: str
    bind_dn: str
    bind_password: str = field(repr=False)
    base_dn: str = ""
    user_search_base: str = ""
    group_search_base: str = ""
    management_url: str = ""
    management_username: str = ""
    management_password: str = field(default="", repr=False)
    session_secret: str = field(default="", repr=False)

    def to_record(self, secrets: SecretStore) -> dict:
        """Serialize for the sidecar with every secret field encrypted."""
        record = {}
        for f in fields(self):
            value = getattr(self, f.name)
            record[f.name] = secrets.encrypt(value) if f.name in SECRET_FIELDS else value
        return record

    @classmethod
    def from_record(cls, record: dict, secrets: SecretStore) -> "SystemConfiguration":
        """Inverse of to_record(). Raises CryptoError on key mismatch."""
        values = {}
        for f in fields(cls):
            value = record.get(f.name) or ""
            values[f.name] = secrets.decrypt(value) if f.name in SECRET_FIELDS and value else value
        return cls(**values)


class ConfigurationGate:
    """Answers "is setup done?" and hands out the decrypted configuration."""

    def __init__(self, store: SidecarStore, secrets: SecretStore):
        self._store = store
        self._secrets = secrets

    def is_configured(self) -> bool:
        record = self._store.get_config_record()
        return bool(record and record.get("is_configured"))

    def current_config(self) -> Optional[SystemConfiguration]:
        """Decrypted configuration, or None before setup."""
        record = self._store.get_config_record()
        if not record or not record.get("is_configured"):
            return None
        return SystemConfiguration.from_record(record, self._secrets)

    def require_config(self) -> SystemConfiguration:
        config = self.current_config()
        if config is None:
            raise NotConfiguredError()
        return config

    def save(self, config: SystemConfiguration) -> None:
        """Persist (or overwrite) the configuration and mark the system configured."""
        record = config.to_record(self._secrets)
        record["is_configured"] = True
        self._store.save_config_record(record)
        logger.info(f"System configuration saved (ldap_url={config.ldap_url}, "
                    f"management_url={config.management_url})")
