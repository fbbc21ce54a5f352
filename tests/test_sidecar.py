"""Tests for the sidecar JSON store."""

import json

import pytest

from core.sidecar import SidecarStore, _redact_sensitive
from core.types import UserSecurityProfile


class TestSecurityProfiles:
    def test_created_disabled_on_first_reference(self, sidecar):
        profile = sidecar.get_security_profile("alice")
        assert profile.uid == "alice"
        assert profile.two_factor_enabled is False
        assert profile.two_factor_secret is None

        on_disk = json.loads(sidecar.path.read_text())
        assert on_disk["users"]["alice"]["two_factor_enabled"] is False

    def test_saved_profile_survives_reload(self, sidecar):
        sidecar.save_security_profile(
            UserSecurityProfile(uid="alice", two_factor_enabled=True, two_factor_secret="JBSWY3DPEHPK3PXP")
        )
        reloaded = SidecarStore(sidecar.path).get_security_profile("alice")
        assert reloaded.two_factor_enabled is True
        assert reloaded.two_factor_secret == "JBSWY3DPEHPK3PXP"


class TestAuditTrail:
    def test_append_and_filter_by_actor(self, sidecar):
        sidecar.append_audit("alice", "LOGIN", "User logged in")
        sidecar.append_audit("bob", "LOGIN", "User logged in")
        sidecar.append_audit("alice", "CHANGE_PASSWORD", "User changed password")

        alice = sidecar.get_audit_events(uid="alice")
        assert [e.action for e in alice] == ["LOGIN", "CHANGE_PASSWORD"]
        assert len(sidecar.get_audit_events()) == 3

    def test_event_shape(self, sidecar):
        event = sidecar.append_audit("alice", "LOGIN", "User logged in")
        assert event.id
        assert event.timestamp.endswith("+00:00")
        assert event.to_dict()["uid"] == "alice"

    def test_limit_keeps_most_recent(self, sidecar):
        for i in range(5):
            sidecar.append_audit("alice", "LOGIN", f"attempt {i}")
        events = sidecar.get_audit_events(uid="alice", limit=2)
        assert [e.details for e in events] == ["attempt 3", "attempt 4"]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_returns_nothing(self, sidecar, limit):
        for i in range(3):
            sidecar.append_audit("alice", "LOGIN", f"attempt {i}")
        assert sidecar.get_audit_events(limit=limit) == []
        assert len(sidecar.get_audit_events()) == 3

    def test_sensitive_details_redacted(self, sidecar):
        event = sidecar.append_audit("alice", "SETUP", "password=hunter2 applied")
        assert "hunter2" not in event.details
        assert "hunter2" not in sidecar.path.read_text()

    def test_redaction_patterns(self):
        assert _redact_sensitive("api_key: abc123") == "api_key=***REDACTED***"
        assert _redact_sensitive("nothing to hide") == "nothing to hide"


class TestConfigRecord:
    def test_absent_until_saved(self, sidecar):
        assert sidecar.get_config_record() is None
        sidecar.save_config_record({"ldap_url": "ldap://x", "is_configured": True})
        assert sidecar.get_config_record()["ldap_url"] == "ldap://x"

    def test_returned_record_is_a_copy(self, sidecar):
        sidecar.save_config_record({"ldap_url": "ldap://x"})
        record = sidecar.get_config_record()
        record["ldap_url"] = "changed"
        assert sidecar.get_config_record()["ldap_url"] == "ldap://x"


class TestDurability:
    def test_no_temp_files_left_behind(self, sidecar):
        sidecar.append_audit("alice", "LOGIN")
        leftovers = [p.name for p in sidecar.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_corrupt_document_moved_aside(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text("{not json")

        store = SidecarStore(path)

        assert store.get_config_record() is None
        backups = list(tmp_path.glob("db.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text() == "{not json"
