"""Shared pytest fixtures for Directory Gateway tests."""
import os
import sys
from unittest.mock import MagicMock

import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any dashboard module imports.
# TESTING disables the rate limiter; JSON logs are noise in test output.
# ---------------------------------------------------------------------------
os.environ.setdefault('TESTING', 'true')
os.environ.setdefault('LOG_FORMAT', 'text')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

SESSION_SECRET = "a1" * 64


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def secret_store(tmp_path):
    from core.secret_store import SecretStore
    return SecretStore(tmp_path / "master.key")


@pytest.fixture
def sidecar(tmp_path):
    from core.sidecar import SidecarStore
    return SidecarStore(tmp_path / "db.json")


@pytest.fixture
def gate(sidecar, secret_store):
    from config.system_config import ConfigurationGate
    return ConfigurationGate(sidecar, secret_store)


@pytest.fixture
def system_config():
    """Configuration as it looks after a successful setup."""
    from config.system_config import SystemConfiguration
    return SystemConfiguration(
        ldap_url="ldap://ldap.example.test:3890",
        bind_dn="uid=admin,ou=people,dc=example,dc=test",
        bind_password="bind-secret",
        base_dn="dc=example,dc=test",
        user_search_base="ou=people,dc=example,dc=test",
        group_search_base="ou=groups,dc=example,dc=test",
        management_url="http://lldap.example.test:17170",
        management_username="admin",
        management_password="mgmt-secret",
        session_secret=SESSION_SECRET,
    )


@pytest.fixture
def configured_gate(gate, system_config):
    gate.save(system_config)
    return gate


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def make_user():
    """Factory for DirectoryUser records under the test user base."""
    from core.types import DirectoryUser

    def _make(uid="alice", member_of=(), mail=None, display_name=None, groups=()):
        return DirectoryUser(
            dn=f"uid={uid},ou=people,dc=example,dc=test",
            uid=uid,
            display_name=display_name or uid.capitalize(),
            mail=mail if mail is not None else f"{uid}@example.test",
            member_of=tuple(member_of),
            groups=tuple(groups),
        )
    return _make


@pytest.fixture
def directory():
    """Stub DirectoryClient."""
    from core.ldap_client import DirectoryClient
    return MagicMock(spec=DirectoryClient)


@pytest.fixture
def management():
    """Stub ManagementClient."""
    from core.management_client import ManagementClient
    return MagicMock(spec=ManagementClient)


# =============================================================================
# Flask API Test Client Fixtures
# =============================================================================

@pytest.fixture
def context(secret_store, sidecar, directory, management):
    """GatewayContext wired to temp storage and stub backends (not configured yet)."""
    from config.settings import get_settings
    from dashboard.context import GatewayContext

    return GatewayContext(
        settings=get_settings(),
        secrets=secret_store,
        store=sidecar,
        directory_factory=lambda config: directory,
        management_factory=lambda config: management,
    )


@pytest.fixture
def configured_context(context, system_config):
    context.gate.save(system_config)
    return context


@pytest.fixture
def app(configured_context):
    """Create Flask app for testing via the application factory."""
    from dashboard.app import create_app

    return create_app(config={'TESTING': True}, context=configured_context)


@pytest.fixture
def unconfigured_app(context):
    from dashboard.app import create_app

    return create_app(config={'TESTING': True}, context=context)


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def session_headers():
    """Build Authorization headers for a session token signed with the test secret."""
    from dashboard.auth.tokens import create_session_token

    def _headers(uid="alice", is_admin=False):
        token = create_session_token(
            uid=uid,
            cn=uid.capitalize(),
            mail=f"{uid}@example.test",
            is_admin=is_admin,
            secret=SESSION_SECRET,
        )
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def admin_headers(session_headers):
    return session_headers("admin", is_admin=True)


@pytest.fixture
def user_headers(session_headers):
    return session_headers("alice", is_admin=False)
