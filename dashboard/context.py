"""
Component wiring for the Flask app.

One GatewayContext per app holds the long-lived pieces (secret store, sidecar,
configuration gate, challenge ledger, cached management client) and builds the
per-request ones from the current SystemConfiguration. Routes reach it via
get_context().

Usage:
    from dashboard.context import get_context

    ctx = get_context()
    service = ctx.auth_service()      # raises NotConfiguredError before setup
"""
import logging
import threading
from typing import Callable, Optional

from flask import current_app

from config.settings import AppSettings, get_settings
from config.system_config import ConfigurationGate, SystemConfiguration
from core.ldap_client import DirectoryClient
from core.management_client import ManagementClient
from core.reconciliation import ReconciliationPolicy
from core.secret_store import SecretStore
from core.setup_service import SetupService
from core.sidecar import SidecarStore
from dashboard.auth.identity import AuthService
from dashboard.auth.tokens import ChallengeLedger

logger = logging.getLogger(__name__)

EXTENSION_KEY = "gateway"


class GatewayContext:
    """Holds shared state and builds backend clients from the live configuration."""

    def __init__(
        self,
        settings: AppSettings,
        secrets: SecretStore,
        store: SidecarStore,
        directory_factory: Optional[Callable[[SystemConfiguration], DirectoryClient]] = None,
        management_factory: Optional[Callable[[SystemConfiguration], ManagementClient]] = None,
    ):
        self.settings = settings
        self.secrets = secrets
        self.store = store
        self.gate = ConfigurationGate(store, secrets)
        self.ledger = ChallengeLedger()
        self._directory_factory = directory_factory or self._default_directory
        self._management_factory = management_factory or self._default_management
        self._management: Optional[ManagementClient] = None
        self._management_key: Optional[tuple] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None) -> "GatewayContext":
        settings = settings or get_settings()
        storage = settings.storage
        return cls(
            settings=settings,
            secrets=SecretStore(storage.key_file),
            store=SidecarStore(storage.sidecar_file),
        )

    # =========================================================================
    # Client construction
    # =========================================================================

    def _default_directory(self, config: SystemConfiguration) -> DirectoryClient:
        return DirectoryClient.from_config(
            config, timeout=self.settings.backends.directory_timeout_seconds
        )

    def _default_management(self, config: SystemConfiguration) -> ManagementClient:
        return ManagementClient.from_config(
            config,
            timeout=self.settings.backends.management_timeout_seconds,
            verify_ssl=self.settings.backends.management_verify_ssl,
        )

    def directory(self, config: Optional[SystemConfiguration] = None) -> DirectoryClient:
        return self._directory_factory(config or self.gate.require_config())

    def management(self, config: Optional[SystemConfiguration] = None) -> ManagementClient:
        """Management client with its token cached across requests.

        Rebuilt when setup changes the URL or credentials.
        """
        config = config or self.gate.require_config()
        key = (config.management_url, config.management_username, config.management_password)
        with self._lock:
            if self._management is None or self._management_key != key:
                self._management = self._management_factory(config)
                self._management_key = key
            return self._management

    # =========================================================================
    # Services
    # =========================================================================

    def auth_service(self) -> AuthService:
        config = self.gate.require_config()
        auth = self.settings.auth
        return AuthService(
            directory=self.directory(config),
            store=self.store,
            session_secret=config.session_secret,
            ledger=self.ledger,
            admin_groups=auth.admin_groups,
            reserved_admin_uid=auth.reserved_admin_uid,
            password_min_length=auth.password_min_length,
            issuer_name=auth.mfa_issuer_name,
        )

    def reconciliation(self) -> ReconciliationPolicy:
        config = self.gate.require_config()
        return ReconciliationPolicy(
            directory=self.directory(config),
            management=self.management(config),
            user_search_base=config.user_search_base,
            group_search_base=config.group_search_base,
        )

    def setup_service(self) -> SetupService:
        backends = self.settings.backends
        return SetupService(
            self.gate,
            self.store,
            timeout=backends.setup_timeout_seconds,
            verify_ssl=backends.management_verify_ssl,
        )

    def session_secret(self) -> str:
        return self.gate.require_config().session_secret


def init_context(app, context: Optional[GatewayContext] = None) -> GatewayContext:
    """Attach a context to app (built from settings when not supplied)."""
    context = context or GatewayContext.from_settings()
    app.extensions[EXTENSION_KEY] = context
    logger.info(f"Gateway context ready (configured={context.gate.is_configured()})")
    return context


def get_context() -> GatewayContext:
    return current_app.extensions[EXTENSION_KEY]
