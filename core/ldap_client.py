"""
Directory client: credential checks and administrative operations over LDAP.

Every public operation opens its own admin-bound connection and unbinds it on
every exit path. Connect and receive timeouts are bounded and binds are never
retried.

Usage:
    from core.ldap_client import DirectoryClient

    client = DirectoryClient.from_config(gate.require_config(), timeout=5)
    user = client.authenticate("alice", "secret")   # DirectoryUser or None
    users = client.search("(mail=*@example.com)")
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ldap3 import MODIFY_REPLACE, NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from .errors import DirectoryError
from .types import DirectoryUser

logger = logging.getLogger(__name__)

DEFAULT_FILTER = "(objectClass=person)"
USER_ATTRIBUTES = ["uid", "cn", "displayName", "mail", "memberOf"]


def classify_ldap_failure(exc: Exception) -> str:
    """Map an ldap3 transport exception onto a cause string."""
    text = str(exc).lower()
    if "timed out" in text or "timeout" in text:
        return "timeout"
    if "refused" in text:
        return "connection_refused"
    if "name or service not known" in text or "getaddrinfo" in text or "nodename" in text:
        return "dns_failure"
    return "unreachable"


class DirectoryClient:
    """
    LDAP client bound to one directory and one service account.

    Attributes:
        url: ldap:// or ldaps:// URL
        bind_dn: service account DN used for searches and writes
        user_search_base: subtree holding person entries
        timeout: connect and receive timeout in seconds
    """

    def __init__(
        self,
        url: str,
        bind_dn: str,
        bind_password: str,
        user_search_base: str,
        timeout: int = 5,
    ):
        self.url = url
        self.bind_dn = bind_dn
        self._bind_password = bind_password
        self.user_search_base = user_search_base
        self.timeout = timeout

    @classmethod
    def from_config(cls, config, timeout: int = 5) -> "DirectoryClient":
        """Build from a SystemConfiguration."""
        return cls(
            url=config.ldap_url,
            bind_dn=config.bind_dn,
            bind_password=config.bind_password,
            user_search_base=config.user_search_base or config.base_dn,
            timeout=timeout,
        )

    # =========================================================================
    # Connection handling
    # =========================================================================

    @staticmethod
    def _connection(url: str, user: str, password: str, timeout: int) -> Connection:
        server = Server(url, connect_timeout=timeout, get_info=NONE)
        return Connection(
            server,
            user=user,
            password=password,
            receive_timeout=timeout,
            raise_exceptions=False,
        )

    @staticmethod
    def _close(conn: Connection) -> None:
        try:
            conn.unbind()
        except LDAPException as e:
            logger.debug(f"Ignoring error while unbinding: {e}")

    @contextmanager
    def _admin_connection(self) -> Iterator[Connection]:
        """Yield a connection bound as the service account; always unbinds."""
        conn = self._connection(self.url, self.bind_dn, self._bind_password, self.timeout)
        try:
            try:
                bound = conn.bind()
            except LDAPException as e:
                cause = classify_ldap_failure(e)
                logger.warning(f"Directory unreachable at {self.url} ({cause}): {e}")
                raise DirectoryError(f"Directory unreachable: {e}", cause=cause)
            if not bound:
                description = (conn.result or {}).get("description", "bind rejected")
                logger.error(f"Service account bind rejected for {self.bind_dn}: {description}")
                raise DirectoryError(
                    f"Directory rejected service account bind: {description}",
                    cause="bind_rejected",
                )
            yield conn
        except LDAPException as e:
            cause = classify_ldap_failure(e)
            logger.warning(f"Directory operation failed ({cause}): {e}")
            raise DirectoryError(f"Directory operation failed: {e}", cause=cause)
        finally:
            self._close(conn)

    # =========================================================================
    # Reads
    # =========================================================================

    def _search(self, conn: Connection, search_filter: str) -> list[DirectoryUser]:
        if not conn.search(
            search_base=self.user_search_base,
            search_filter=search_filter,
            search_scope=SUBTREE,
            attributes=USER_ATTRIBUTES,
        ):
            logger.debug(f"Search {search_filter} returned nothing: {conn.result}")
            return []
        return [
            DirectoryUser.from_ldap_attributes(entry.entry_dn, entry.entry_attributes_as_dict)
            for entry in conn.entries
        ]

    def search(self, search_filter: Optional[str] = None) -> list[DirectoryUser]:
        """Subtree search under the user base. Defaults to every person entry."""
        with self._admin_connection() as conn:
            return self._search(conn, search_filter or DEFAULT_FILTER)

    def find_user(self, uid: str) -> Optional[DirectoryUser]:
        if not uid:
            return None
        users = self.search(f"(uid={escape_filter_chars(uid)})")
        return users[0] if users else None

    def authenticate(self, uid: str, password: str) -> Optional[DirectoryUser]:
        """
        Verify a login id and password.

        Returns the user only if a bind as the user's own DN succeeds. Unknown
        ids, wrong or empty passwords and failed searches all return None.

        Raises:
            DirectoryError: service account rejected, directory unreachable or timed out
        """
        # An empty password would be an anonymous bind and succeed on most servers
        if not uid or not password:
            return None

        with self._admin_connection() as conn:
            users = self._search(conn, f"(uid={escape_filter_chars(uid)})")
        if not users:
            logger.info(f"Authentication failed: no entry for uid {uid}")
            return None

        user = users[0]
        conn = self._connection(self.url, user.dn, password, self.timeout)
        try:
            bound = conn.bind()
        except LDAPException as e:
            cause = classify_ldap_failure(e)
            raise DirectoryError(f"Directory unreachable: {e}", cause=cause)
        finally:
            self._close(conn)

        if not bound:
            logger.info(f"Authentication failed: bind rejected for {user.dn}")
            return None
        return user

    # =========================================================================
    # Writes
    # =========================================================================

    def modify(self, dn: str, changes: dict) -> None:
        """Replace each attribute in ``changes`` with the given value(s)."""
        modifications = {}
        for attribute, value in changes.items():
            values = value if isinstance(value, (list, tuple)) else [value]
            modifications[attribute] = [(MODIFY_REPLACE, list(values))]

        with self._admin_connection() as conn:
            if not conn.modify(dn, modifications):
                description = (conn.result or {}).get("description", "modify failed")
                raise DirectoryError(
                    f"Directory rejected modify of {dn}: {description}", cause="rejected"
                )
        logger.info(f"Modified {sorted(changes)} on {dn}")

    def change_password(self, dn: str, new_password: str) -> None:
        self.modify(dn, {"userPassword": new_password})

    def add(self, dn: str, object_class: list[str], attributes: dict) -> None:
        with self._admin_connection() as conn:
            if not conn.add(dn, object_class, attributes):
                description = (conn.result or {}).get("description", "add failed")
                raise DirectoryError(f"Directory rejected add of {dn}: {description}", cause="rejected")
        logger.info(f"Added {dn}")

    def delete(self, dn: str) -> None:
        with self._admin_connection() as conn:
            if not conn.delete(dn):
                description = (conn.result or {}).get("description", "delete failed")
                raise DirectoryError(f"Directory rejected delete of {dn}: {description}", cause="rejected")
        logger.info(f"Deleted {dn}")

    # =========================================================================
    # Setup probe
    # =========================================================================

    @staticmethod
    def probe_bind(url: str, bind_dn: str, password: str, timeout: int = 5) -> None:
        """
        Bind once with candidate setup credentials.

        Raises:
            DirectoryError: "LDAP connection failed: ..." on rejection, timeout or
                unreachable server
        """
        conn = DirectoryClient._connection(url, bind_dn, password, timeout)
        try:
            bound = conn.bind()
            description = (conn.result or {}).get("description") or "invalid credentials"
        except LDAPException as e:
            cause = classify_ldap_failure(e)
            raise DirectoryError(f"LDAP connection failed: {e}", cause=cause)
        finally:
            DirectoryClient._close(conn)

        if not bound:
            raise DirectoryError(
                f"LDAP connection failed: {description}", cause="invalid_credentials"
            )
