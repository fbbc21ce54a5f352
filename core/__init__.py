"""
Core backend logic for the directory gateway.

This module consolidates the pieces used by the Flask API (dashboard/):
- secret_store: encryption of configuration secrets at rest
- sidecar: JSON document with 2FA profiles, audit events and the config record
- ldap_client / management_client: the two backends
- reconciliation: which backend answers which read or write
"""

from .errors import (
    APIError,
    InternalError,
    NotConfiguredError,
    DirectoryError,
    ManagementApiError,
    CryptoError,
)

from .types import DirectoryUser, UserSecurityProfile, AuditEvent, ListingResult

from .secret_store import SecretStore
from .sidecar import SidecarStore

from .ldap_client import DirectoryClient
from .management_client import ManagementClient
from .reconciliation import ReconciliationPolicy, choose_listing, UpdateOutcome, ImportReport

__all__ = [
    # Errors
    "APIError",
    "InternalError",
    "NotConfiguredError",
    "DirectoryError",
    "ManagementApiError",
    "CryptoError",

    # Types
    "DirectoryUser",
    "UserSecurityProfile",
    "AuditEvent",
    "ListingResult",

    # Storage
    "SecretStore",
    "SidecarStore",

    # Backends
    "DirectoryClient",
    "ManagementClient",
    "ReconciliationPolicy",
    "choose_listing",
    "UpdateOutcome",
    "ImportReport",
]
