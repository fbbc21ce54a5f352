"""
Gateway domain types - no dependencies on other gateway modules.

NOTE: Keep this minimal. Only add types here if they are shared by the
clients, the reconciliation policy and the auth service.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class DirectoryUser:
    """Canonical identity record from either read path (immutable).

    ``source`` tells which backend answered; the two paths are alternate
    representations of the same listing and are never merged field by field.
    """
    dn: str
    uid: str
    display_name: str = ""
    mail: str = ""
    member_of: tuple[str, ...] = ()
    groups: tuple[dict, ...] = ()  # management group objects {id, displayName}
    source: str = "directory"

    @classmethod
    def from_ldap_attributes(cls, dn: str, attributes: dict) -> "DirectoryUser":
        """Build from an ldap3 ``entry_attributes_as_dict`` style mapping."""
        def first(name):
            values = attributes.get(name) or []
            if isinstance(values, (list, tuple)):
                return str(values[0]) if values else ""
            return str(values)

        member_of = attributes.get("memberOf") or []
        if isinstance(member_of, str):
            member_of = [member_of]

        uid = first("uid")
        return cls(
            dn=dn,
            uid=uid,
            display_name=first("displayName") or first("cn") or uid,
            mail=first("mail"),
            member_of=tuple(str(g) for g in member_of),
            source="directory",
        )

    @classmethod
    def from_management_record(
        cls, record: dict, user_search_base: str, group_search_base: str
    ) -> "DirectoryUser":
        """Build from a management API ``users`` item."""
        uid = record.get("id") or ""
        groups = tuple(g for g in (record.get("groups") or []) if g)
        return cls(
            dn=f"uid={uid},{user_search_base}",
            uid=uid,
            display_name=record.get("displayName") or "",
            mail=record.get("email") or "",
            member_of=tuple(
                f"cn={g.get('displayName')},{group_search_base}" for g in groups
            ),
            groups=groups,
            source="management",
        )

    def to_dict(self) -> dict:
        data = {
            "dn": self.dn,
            "uid": self.uid,
            "cn": self.display_name,
            "displayName": self.display_name,
            "mail": self.mail,
            "memberOf": list(self.member_of),
            "source": self.source,
        }
        if self.groups:
            data["groups"] = [dict(g) for g in self.groups]
        return data


@dataclass
class UserSecurityProfile:
    """Per-uid second factor state kept in the sidecar."""
    uid: str
    two_factor_enabled: bool = False
    two_factor_secret: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "UserSecurityProfile":
        return cls(
            uid=data["uid"],
            two_factor_enabled=bool(data.get("two_factor_enabled", False)),
            two_factor_secret=data.get("two_factor_secret"),
        )

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "two_factor_enabled": self.two_factor_enabled,
            "two_factor_secret": self.two_factor_secret,
        }


@dataclass(frozen=True)
class AuditEvent:
    """Append-only audit record."""
    id: str
    timestamp: str
    uid: str  # actor
    action: str
    details: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "uid": self.uid,
            "action": self.action,
            "details": self.details,
        }


@dataclass
class ListingResult:
    """Outcome of one read path: either users or the reason it failed."""
    source: str
    users: list[DirectoryUser] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, source: str, users: list[DirectoryUser]) -> "ListingResult":
        return cls(source=source, users=list(users))

    @classmethod
    def failure(cls, source: str, reason: str, error: Exception | None = None) -> "ListingResult":
        return cls(source=source, reason=reason, error=error)
