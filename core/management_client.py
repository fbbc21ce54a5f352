"""
Directory-management API client (LLDAP-style GraphQL over HTTP).

Handles authentication, bearer token caching and the identity CRUD calls the
gateway needs. Passwords are never sent through this API; they go through the
directory client.

Usage:
    from core.management_client import ManagementClient

    client = ManagementClient.from_config(gate.require_config(), timeout=5)
    users = client.get_users()
    client.update_user({"uid": "alice", "mail": "alice@example.com"})

Failure classification (``cause`` on ManagementApiError):
    connection_refused, dns_failure, timeout  - transport failures
    unauthorized, not_found                   - HTTP 401 / 404
    graphql_error                             - GraphQL ``errors`` list
    backend_error, unknown                    - anything else
"""

import logging
from typing import Callable, Optional, TypeVar

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from .errors import ManagementApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSPORT_CAUSES = frozenset({"connection_refused", "dns_failure", "timeout"})

_DNS_MARKERS = (
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "NameResolutionError",
    "Temporary failure in name resolution",
)

AUTH_MUTATION = """
mutation Login($username: String!, $password: String!) {
  auth(username: $username, password: $password) {
    token
  }
}
"""

USERS_QUERY = """
query {
  users {
    id
    email
    displayName
    groups {
      id
      displayName
    }
  }
}
"""

CREATE_USER_MUTATION = """
mutation CreateUser($user: CreateUserInput!) {
  createUser(user: $user) {
    id
  }
}
"""

UPDATE_USER_MUTATION = """
mutation UpdateUser($user: UpdateUserInput!) {
  updateUser(user: $user) {
    ok
  }
}
"""

DELETE_USER_MUTATION = """
mutation DeleteUser($userId: String!) {
  deleteUser(userId: $userId) {
    ok
  }
}
"""


# =============================================================================
# Failure classification
# =============================================================================

def _json_or_none(response: requests.Response):
    try:
        return response.json()
    except ValueError:
        return None


def _json_object(response: requests.Response) -> Optional[dict]:
    """Response body when it is a JSON object, else None."""
    body = _json_or_none(response)
    return body if isinstance(body, dict) else None


def describe_request_failure(exc: Exception, base_url: str) -> tuple[str, str]:
    """
    Classify a failed management API call.

    Returns:
        (cause, human readable message)
    """
    if isinstance(exc, ManagementApiError):
        return exc.cause, str(exc)

    # ConnectTimeout is both a Timeout and a ConnectionError
    if isinstance(exc, Timeout):
        return "timeout", f"Connection to management API at {base_url} timed out."

    if isinstance(exc, ConnectionError):
        text = str(exc)
        if any(marker in text for marker in _DNS_MARKERS):
            return "dns_failure", (
                f"Unable to resolve management API address: {base_url}. Check the hostname."
            )
        return "connection_refused", (
            f"Unable to connect to management API at {base_url}. "
            "Connection refused. Is the server running?"
        )

    if isinstance(exc, HTTPError) and exc.response is not None:
        response = exc.response
        if response.status_code == 401:
            return "unauthorized", (
                "Authentication failed. Please check your admin username and password."
            )
        if response.status_code == 404:
            return "not_found", (
                f"Management API endpoint not found at {base_url}. Check the base URL."
            )
        body = _json_object(response)
        if body is not None:
            message = _graphql_errors(body)
            if message:
                return "graphql_error", message
            if body.get("message"):
                return "backend_error", body["message"]

    return "unknown", str(exc) or exc.__class__.__name__


def is_transport_failure(exc: Exception) -> bool:
    """True when the API could not be reached at all (as opposed to a rejection)."""
    return isinstance(exc, ManagementApiError) and exc.cause in TRANSPORT_CAUSES


def _graphql_errors(body) -> Optional[str]:
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            return first.get("message") if isinstance(first, dict) else str(first)
    return None


# =============================================================================
# Authentication (shared by setup validation and the client)
# =============================================================================

def fetch_token(
    session: requests.Session,
    base_url: str,
    username: str,
    password: str,
    timeout: int = 5,
) -> str:
    """
    Obtain a bearer token: simple login first, GraphQL ``auth`` mutation second.

    Raises:
        ManagementApiError: both mechanisms failed. The cause and message
            describe the failure of the second attempt.
    """
    try:
        response = session.post(
            f"{base_url}/auth/simple/login",
            json={"username": username, "password": password},
            timeout=timeout,
        )
        response.raise_for_status()
        token = (_json_object(response) or {}).get("token")
        if token and isinstance(token, str):
            logger.debug(f"Simple login to {base_url} succeeded")
            return token
        logger.warning(f"Simple login to {base_url} returned no token, trying GraphQL auth")
    except RequestException as e:
        logger.warning(f"Simple login to {base_url} failed: {e}. Trying GraphQL auth")

    try:
        response = session.post(
            f"{base_url}/api/graphql",
            json={
                "query": AUTH_MUTATION,
                "variables": {"username": username, "password": password},
            },
            timeout=timeout,
        )
        response.raise_for_status()
        body = _json_object(response)
        if body is None:
            raise ManagementApiError("Unexpected response from authentication endpoint", cause="unknown")
        message = _graphql_errors(body)
        if message:
            raise ManagementApiError(message, cause="graphql_error")
        data = body.get("data")
        auth = data.get("auth") if isinstance(data, dict) else None
        token = auth.get("token") if isinstance(auth, dict) else None
        if not token or not isinstance(token, str):
            raise ManagementApiError("No token returned in response", cause="unknown")
        logger.debug(f"GraphQL auth against {base_url} succeeded")
        return token
    except (RequestException, ManagementApiError) as e:
        cause, message = describe_request_failure(e, base_url)
        logger.error(f"Management API authentication failed ({cause}): {message}")
        raise ManagementApiError(f"Management API connection failed: {message}", cause=cause)


# =============================================================================
# Client
# =============================================================================

class ManagementClient:
    """
    GraphQL client with a cached bearer token.

    The token is refreshed without a lock: concurrent requests that both see a
    401 may each log in again, and the last token written wins.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: int = 5,
        verify_ssl: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self._password = password
        self.timeout = timeout
        self.graphql_url = f"{self.base_url}/api/graphql"
        self._token: Optional[str] = None

        self.session = requests.Session()
        self.session.verify = verify_ssl
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_config(cls, config, timeout: int = 5, verify_ssl: bool = True) -> "ManagementClient":
        """Build from a SystemConfiguration."""
        return cls(
            base_url=config.management_url,
            username=config.management_username,
            password=config.management_password,
            timeout=timeout,
            verify_ssl=verify_ssl,
        )

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    # =========================================================================
    # Authentication
    # =========================================================================

    def login(self) -> None:
        logger.info(f"Logging into management API at {self.base_url} as {self.username}")
        self._token = fetch_token(
            self.session, self.base_url, self.username, self._password, self.timeout
        )

    def ensure_authenticated(self) -> None:
        if self._token is None:
            self.login()

    def _call_with_reauth(self, operation: Callable[[], T]) -> T:
        """
        Run operation; on a 401 drop the token, log in once and retry once.

        A second 401 surfaces as ManagementApiError with cause ``unauthorized``.
        """
        self.ensure_authenticated()
        try:
            return operation()
        except ManagementApiError as e:
            if e.cause != "unauthorized":
                raise
            logger.info("Management API rejected cached token, logging in again")
            self._token = None
            self.login()
            return operation()

    # =========================================================================
    # Transport
    # =========================================================================

    def _graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """
        POST one GraphQL document.

        Returns:
            The ``data`` object of the response

        Raises:
            ManagementApiError: transport failure, HTTP error or GraphQL errors
        """
        payload = {"query": query}
        if variables is not None:
            payload["variables"] = variables

        try:
            response = self.session.post(
                self.graphql_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except RequestException as e:
            cause, message = describe_request_failure(e, self.base_url)
            raise ManagementApiError(message, cause=cause)

        body = _json_or_none(response)
        message = _graphql_errors(body)
        if message:
            logger.warning(f"Management API returned GraphQL error: {message}")
            raise ManagementApiError(message, cause="graphql_error")
        if not isinstance(body, dict):
            raise ManagementApiError("Management API returned a non-JSON response", cause="unknown")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ManagementApiError("Management API returned malformed data", cause="unknown")
        return data

    @staticmethod
    def to_management_fields(fields: dict) -> dict:
        """
        Map gateway field names onto the API's user input.

        uid -> id, mail -> email, displayName/cn -> displayName. None values
        are omitted so updates act as partial patches; password is dropped.
        """
        user = {
            "id": fields.get("uid"),
            "email": fields.get("mail"),
            "displayName": fields.get("displayName")
            if fields.get("displayName") is not None
            else fields.get("cn"),
        }
        return {key: value for key, value in user.items() if value is not None}

    # =========================================================================
    # Operations
    # =========================================================================

    def get_users(self) -> list[dict]:
        """Raw ``users`` records: {id, email, displayName, groups[{id, displayName}]}."""
        data = self._call_with_reauth(lambda: self._graphql(USERS_QUERY))
        users = data.get("users") or []
        if not isinstance(users, list) or not all(isinstance(u, dict) for u in users):
            raise ManagementApiError("Management API returned a malformed user list", cause="unknown")
        return users

    def create_user(self, fields: dict) -> dict:
        user = self.to_management_fields(fields)
        data = self._call_with_reauth(
            lambda: self._graphql(CREATE_USER_MUTATION, {"user": user})
        )
        logger.info(f"Created user {user.get('id')} via management API")
        return data.get("createUser") or {}

    def update_user(self, fields: dict) -> dict:
        user = self.to_management_fields(fields)
        data = self._call_with_reauth(
            lambda: self._graphql(UPDATE_USER_MUTATION, {"user": user})
        )
        logger.info(f"Updated {sorted(k for k in user if k != 'id')} of {user.get('id')} via management API")
        return data.get("updateUser") or {}

    def delete_user(self, user_id: str) -> dict:
        data = self._call_with_reauth(
            lambda: self._graphql(DELETE_USER_MUTATION, {"userId": user_id})
        )
        logger.info(f"Deleted user {user_id} via management API")
        return data.get("deleteUser") or {}
