"""
First-run setup: validate candidate backend credentials, then persist them.

Nothing is written unless both the directory bind and the management API
login succeed with the submitted values.
"""

import logging
import secrets
from dataclasses import dataclass, field

import requests

from config.system_config import ConfigurationGate, SystemConfiguration

from .errors import ValidationError
from .ldap_client import DirectoryClient
from .management_client import fetch_token

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "ldap_url",
    "bind_dn",
    "bind_password",
    "management_url",
    "management_username",
    "management_password",
)


@dataclass
class SetupRequest:
    ldap_url: str
    bind_dn: str
    bind_password: str = field(repr=False)
    base_dn: str
    user_search_base: str
    group_search_base: str
    management_url: str
    management_username: str
    management_password: str = field(repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "SetupRequest":
        """
        Validate and normalize a setup submission.

        Raises:
            ValidationError: a required field is missing or blank
        """
        data = data or {}
        missing = [name for name in REQUIRED_FIELDS if not str(data.get(name) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        base_dn = str(data.get("base_dn") or "").strip()
        return cls(
            ldap_url=str(data["ldap_url"]).strip(),
            bind_dn=str(data["bind_dn"]).strip(),
            bind_password=str(data["bind_password"]),
            base_dn=base_dn,
            user_search_base=str(data.get("user_search_base") or "").strip() or base_dn,
            group_search_base=str(data.get("group_search_base") or "").strip() or base_dn,
            management_url=str(data["management_url"]).strip().rstrip("/"),
            management_username=str(data["management_username"]).strip(),
            management_password=str(data["management_password"]),
        )


class SetupService:
    """Runs setup validation and saves the configuration through the gate."""

    def __init__(self, gate: ConfigurationGate, store, timeout: int = 5, verify_ssl: bool = True):
        self.gate = gate
        self.store = store
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def _probe_management(self, request: SetupRequest) -> None:
        session = requests.Session()
        session.verify = self.verify_ssl
        try:
            fetch_token(
                session,
                request.management_url,
                request.management_username,
                request.management_password,
                self.timeout,
            )
        finally:
            session.close()

    def run(self, request: SetupRequest, actor: str = "setup") -> SystemConfiguration:
        """
        Validate against both backends and persist.

        Raises:
            DirectoryError: "LDAP connection failed: ..."
            ManagementApiError: "Management API connection failed: ..."
        """
        logger.info(f"Validating setup: directory {request.ldap_url} as {request.bind_dn}")
        DirectoryClient.probe_bind(
            request.ldap_url, request.bind_dn, request.bind_password, self.timeout
        )

        logger.info(
            f"Validating setup: management API {request.management_url} "
            f"as {request.management_username}"
        )
        self._probe_management(request)

        config = SystemConfiguration(
            ldap_url=request.ldap_url,
            bind_dn=request.bind_dn,
            bind_password=request.bind_password,
            base_dn=request.base_dn,
            user_search_base=request.user_search_base,
            group_search_base=request.group_search_base,
            management_url=request.management_url,
            management_username=request.management_username,
            management_password=request.management_password,
            session_secret=secrets.token_hex(64),
        )
        self.gate.save(config)
        self.store.append_audit(actor, "SETUP", f"Configured directory {request.ldap_url}")
        return config
