"""
Reconciliation policy between the directory and the management API.

Reads: the management listing is preferred for the plain "all users" query;
any other filter, or a failed management listing, goes to the directory. The
two listings are alternate representations and are never merged.

Writes: identity fields (mail, display name) go to the management API and
passwords go to the directory. Nothing here is transactional; partial
outcomes are reported to the caller instead of being rolled back.

Usage:
    from core.reconciliation import ReconciliationPolicy

    policy = ReconciliationPolicy(directory, management, config.user_search_base,
                                  config.group_search_base)
    listing = policy.list_users()
    outcome = policy.update_user("alice", {"mail": "a@example.com", "password": "n3w-secret"})
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import APIError, NotFoundError, ValidationError
from .ldap_client import DEFAULT_FILTER
from .management_client import is_transport_failure
from .types import DirectoryUser, ListingResult

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("mail", "displayName", "cn")


def is_default_filter(search_filter: Optional[str]) -> bool:
    """True for an absent filter or the plain person filter."""
    if search_filter is None:
        return True
    normalized = search_filter.strip().lower()
    return normalized in ("", DEFAULT_FILTER.lower())


def choose_listing(
    search_filter: Optional[str],
    fetch_management: Callable[[], ListingResult],
    fetch_directory: Callable[[Optional[str]], ListingResult],
) -> ListingResult:
    """
    Pick the listing to return.

    Management first for the default filter, directory on its failure or for
    any other filter. Pure: all I/O happens inside the two callables.
    """
    if is_default_filter(search_filter):
        result = fetch_management()
        if result.ok:
            return result
        logger.warning(f"Management listing failed ({result.reason}), falling back to directory search")
        return fetch_directory(None)
    return fetch_directory(search_filter)


@dataclass
class UpdateOutcome:
    """Which legs of an update ran, which succeeded, and why the others failed."""
    uid: str
    attempted: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    errors: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def partial(self) -> bool:
        return bool(self.succeeded) and bool(self.errors)

    @property
    def password_changed(self) -> bool:
        return "directory" in self.succeeded

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "attempted": list(self.attempted),
            "succeeded": list(self.succeeded),
            "errors": {leg: str(e) for leg, e in self.errors.items()},
        }


@dataclass
class ImportReport:
    success: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def record_failure(self, uid: str, error: str) -> None:
        self.failed += 1
        self.errors.append({"uid": uid, "error": error})

    def to_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed, "errors": list(self.errors)}


class ReconciliationPolicy:
    """Dispatches reads and writes to the right backend for one configuration."""

    def __init__(self, directory, management, user_search_base: str, group_search_base: str):
        self.directory = directory
        self.management = management
        self.user_search_base = user_search_base
        self.group_search_base = group_search_base

    # =========================================================================
    # Reads
    # =========================================================================

    def _fetch_management(self) -> ListingResult:
        try:
            records = self.management.get_users()
        except APIError as e:
            return ListingResult.failure("management", str(e), e)
        users = [
            DirectoryUser.from_management_record(r, self.user_search_base, self.group_search_base)
            for r in records
        ]
        return ListingResult.success("management", users)

    def _fetch_directory(self, search_filter: Optional[str]) -> ListingResult:
        try:
            return ListingResult.success("directory", self.directory.search(search_filter))
        except APIError as e:
            return ListingResult.failure("directory", str(e), e)

    def list_users(self, search_filter: Optional[str] = None) -> ListingResult:
        return choose_listing(search_filter, self._fetch_management, self._fetch_directory)

    # =========================================================================
    # Writes
    # =========================================================================

    def create_user(self, fields: dict) -> dict:
        """Management API only. A supplied password is not applied."""
        if not fields.get("uid"):
            raise ValidationError("uid is required")
        if fields.get("password"):
            logger.warning(f"Password supplied for new user {fields['uid']} is not applied on creation")
        return self.management.create_user(fields)

    def delete_user(self, uid: str) -> dict:
        return self.management.delete_user(uid)

    def update_user(self, uid: str, fields: dict) -> UpdateOutcome:
        """
        Fan out an administrative update.

        The management leg runs when mail or display name is present, the
        directory leg when a non-blank password is present. Both are attempted
        even if the first fails.
        """
        outcome = UpdateOutcome(uid=uid)

        identity = {k: fields.get(k) for k in IDENTITY_FIELDS if fields.get(k) is not None}
        if identity:
            outcome.attempted.append("management")
            try:
                self.management.update_user({"uid": uid, **identity})
                outcome.succeeded.append("management")
            except APIError as e:
                logger.warning(f"Management update of {uid} failed: {e}")
                outcome.errors["management"] = e

        password = fields.get("password")
        if password and password.strip():
            outcome.attempted.append("directory")
            try:
                user = self.directory.find_user(uid)
                if user is None:
                    raise NotFoundError(f"User {uid} not found in directory")
                self.directory.change_password(user.dn, password)
                outcome.succeeded.append("directory")
            except APIError as e:
                logger.warning(f"Directory password change for {uid} failed: {e}")
                outcome.errors["directory"] = e

        return outcome

    def update_profile(self, uid: str, mail: Optional[str], display_name: Optional[str]) -> str:
        """
        Self-service identity update.

        Returns the backend that applied it. Falls back to a directory modify
        only when the management API cannot be reached; rejections propagate.
        """
        fields = {"mail": mail, "displayName": display_name}
        try:
            self.management.update_user({"uid": uid, **fields})
            return "management"
        except APIError as e:
            if not is_transport_failure(e):
                raise
            logger.warning(f"Management API unreachable ({e}), updating profile of {uid} in directory")

        user = self.directory.find_user(uid)
        if user is None:
            raise NotFoundError("User not found")
        changes = {}
        if mail is not None:
            changes["mail"] = mail
        if display_name is not None:
            changes["cn"] = display_name
        if changes:
            self.directory.modify(user.dn, changes)
        return "directory"

    def bulk_import(self, records: list[dict]) -> ImportReport:
        """Create each record independently; one failure never stops the batch."""
        report = ImportReport()
        for record in records:
            uid = (record.get("uid") or "").strip()
            if not uid or not record.get("password"):
                report.record_failure(uid, "Missing uid or password")
                continue
            try:
                self.create_user({
                    "uid": uid,
                    "password": record.get("password"),
                    "mail": record.get("mail") or "",
                    "cn": record.get("cn") or uid,
                })
                report.success += 1
            except APIError as e:
                report.record_failure(uid, str(e))
        logger.info(f"Bulk import finished: {report.success} created, {report.failed} failed")
        return report
