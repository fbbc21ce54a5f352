"""Tests for the system configuration record and gate."""

import json

import pytest

from config.system_config import SECRET_FIELDS, ConfigurationGate, SystemConfiguration
from core.errors import CryptoError, NotConfiguredError
from core.secret_store import SecretStore


class TestSystemConfiguration:
    def test_record_encrypts_only_secret_fields(self, system_config, secret_store):
        record = system_config.to_record(secret_store)

        for name in SECRET_FIELDS:
            assert record[name] != getattr(system_config, name)
            assert ":" in record[name]
        assert record["ldap_url"] == system_config.ldap_url
        assert record["bind_dn"] == system_config.bind_dn

    def test_record_round_trip(self, system_config, secret_store):
        record = system_config.to_record(secret_store)
        assert SystemConfiguration.from_record(record, secret_store) == system_config

    def test_repr_hides_secrets(self, system_config):
        text = repr(system_config)
        assert "bind-secret" not in text
        assert "mgmt-secret" not in text
        assert system_config.session_secret not in text


class TestConfigurationGate:
    def test_unconfigured_before_setup(self, gate):
        assert gate.is_configured() is False
        assert gate.current_config() is None
        with pytest.raises(NotConfiguredError):
            gate.require_config()

    def test_configured_after_save(self, configured_gate, system_config):
        assert configured_gate.is_configured() is True
        assert configured_gate.require_config() == system_config

    def test_plaintext_never_written(self, configured_gate, sidecar):
        on_disk = sidecar.path.read_text()
        assert "bind-secret" not in on_disk
        assert "mgmt-secret" not in on_disk
        assert json.loads(on_disk)["config"]["is_configured"] is True

    def test_record_without_flag_is_not_configured(self, gate, sidecar, system_config, secret_store):
        sidecar.save_config_record(system_config.to_record(secret_store))
        assert gate.is_configured() is False
        assert gate.current_config() is None

    def test_save_overwrites(self, configured_gate, system_config):
        from dataclasses import replace
        updated = replace(system_config, ldap_url="ldaps://ldap.example.test:6360")
        configured_gate.save(updated)
        assert configured_gate.require_config().ldap_url == "ldaps://ldap.example.test:6360"

    def test_foreign_key_cannot_read_record(self, configured_gate, sidecar, tmp_path):
        other = ConfigurationGate(sidecar, SecretStore(tmp_path / "other.key"))
        assert other.is_configured() is True
        with pytest.raises(CryptoError):
            other.current_config()
