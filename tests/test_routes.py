"""
API tests through the Flask test client.

Backends are stubs from conftest; the sidecar and secret store are real and
live in a temp directory.
"""

import io
from unittest.mock import patch

import pyotp
import pytest
import responses

from core.errors import CryptoError, DirectoryError, ManagementApiError
from core.types import UserSecurityProfile


# =============================================================================
# Health and setup
# =============================================================================


class TestHealth:
    def test_health_reports_configured_flag(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "ok"
        assert body["is_configured"] is True

    def test_security_headers(self, client):
        response = client.get('/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Request-ID']


class TestErrorRendering:
    def test_unexpected_exception_is_generic_500(self, client, user_headers, directory):
        directory.find_user.side_effect = RuntimeError("cannot open /var/lib/gateway/key")

        response = client.get('/api/user/profile', headers=user_headers)

        assert response.status_code == 500
        body = response.get_json()
        assert body["error"] == "Internal server error"
        assert body["request_id"]
        assert "/var/lib" not in response.get_data(as_text=True)

    def test_internal_error_hides_message(self, client, user_headers, directory):
        directory.find_user.side_effect = CryptoError("tag mismatch for record 3")

        response = client.get('/api/user/profile', headers=user_headers)

        assert response.status_code == 500
        assert response.get_json()["error"] == "Internal server error"
        assert response.get_json()["error_id"]
        assert "tag mismatch" not in response.get_data(as_text=True)

    def test_api_error_keeps_its_message(self, client, user_headers, directory):
        directory.find_user.return_value = None

        response = client.get('/api/user/profile', headers=user_headers)

        assert response.status_code == 404
        assert response.get_json()["error"] == "User not found"
        assert response.get_json()["error_id"]


class TestSetupRoutes:
    SUBMISSION = {
        "ldap_url": "ldap://ldap.example.test:3890",
        "bind_dn": "uid=admin,ou=people,dc=example,dc=test",
        "bind_password": "bind-secret",
        "base_dn": "dc=example,dc=test",
        "management_url": "http://lldap.example.test:17170",
        "management_username": "admin",
        "management_password": "mgmt-secret",
    }

    def test_status_before_setup(self, unconfigured_app):
        response = unconfigured_app.test_client().get('/api/setup/status')
        assert response.get_json() == {"is_configured": False}

    def test_operations_blocked_before_setup(self, unconfigured_app):
        response = unconfigured_app.test_client().post(
            '/api/auth/login', json={"username": "alice", "password": "pw"}
        )
        assert response.status_code == 503

    def test_missing_fields(self, unconfigured_app):
        response = unconfigured_app.test_client().post('/api/setup', json={"ldap_url": "ldap://x"})
        assert response.status_code == 400
        assert "Missing required fields" in response.get_json()["error"]

    @patch("core.setup_service.DirectoryClient.probe_bind")
    def test_first_run_setup(self, probe_bind, unconfigured_app):
        client = unconfigured_app.test_client()
        with responses.RequestsMock() as rsps:
            rsps.add(responses.POST, "http://lldap.example.test:17170/auth/simple/login",
                     json={"token": "tok"})
            response = client.post('/api/setup', json=self.SUBMISSION)

        assert response.status_code == 200
        assert client.get('/api/setup/status').get_json() == {"is_configured": True}

    @patch("core.setup_service.DirectoryClient.probe_bind")
    def test_directory_failure_reported_with_cause(self, probe_bind, unconfigured_app):
        probe_bind.side_effect = DirectoryError("LDAP connection failed: timed out", cause="timeout")
        client = unconfigured_app.test_client()

        response = client.post('/api/setup', json=self.SUBMISSION)

        assert response.status_code == 502
        assert response.get_json()["cause"] == "timeout"
        assert response.get_json()["error"].startswith("LDAP connection failed")
        assert client.get('/api/setup/status').get_json() == {"is_configured": False}

    @patch("core.setup_service.DirectoryClient.probe_bind")
    def test_malformed_management_reply_is_bad_gateway(self, probe_bind, unconfigured_app):
        client = unconfigured_app.test_client()
        with responses.RequestsMock() as rsps:
            rsps.add(responses.POST, "http://lldap.example.test:17170/auth/simple/login",
                     json=["not", "a", "token"])
            rsps.add(responses.POST, "http://lldap.example.test:17170/api/graphql", json=["nope"])
            response = client.post('/api/setup', json=self.SUBMISSION)

        assert response.status_code == 502
        assert response.get_json()["cause"] == "unknown"
        assert client.get('/api/setup/status').get_json() == {"is_configured": False}

    def test_rerun_requires_login(self, client):
        assert client.post('/api/setup', json=self.SUBMISSION).status_code == 401

    def test_rerun_requires_admin(self, client, user_headers):
        response = client.post('/api/setup', json=self.SUBMISSION, headers=user_headers)
        assert response.status_code == 403


# =============================================================================
# Authentication
# =============================================================================


class TestAuthRoutes:
    def test_login_success(self, client, directory, make_user):
        directory.authenticate.return_value = make_user("alice")

        response = client.post('/api/auth/login', json={"username": "alice", "password": "pw"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["token"]
        assert body["user"]["uid"] == "alice"
        assert body["user"]["isAdmin"] is False

    def test_login_rejected(self, client, directory):
        directory.authenticate.return_value = None
        response = client.post('/api/auth/login', json={"username": "alice", "password": "bad"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid credentials"

    @pytest.mark.parametrize("body", [None, {"username": "alice"}, {"username": 1, "password": []}])
    def test_login_bad_input(self, client, body):
        assert client.post('/api/auth/login', json=body).status_code == 400

    def test_login_directory_down(self, client, directory):
        directory.authenticate.side_effect = DirectoryError("Directory unreachable", cause="connection_refused")
        response = client.post('/api/auth/login', json={"username": "alice", "password": "pw"})
        assert response.status_code == 502
        assert response.get_json()["cause"] == "connection_refused"

    def test_two_step_login(self, client, directory, sidecar, make_user):
        secret = pyotp.random_base32()
        sidecar.save_security_profile(
            UserSecurityProfile(uid="alice", two_factor_enabled=True, two_factor_secret=secret)
        )
        directory.authenticate.return_value = make_user("alice")
        directory.find_user.return_value = make_user("alice")

        first = client.post('/api/auth/login', json={"username": "alice", "password": "pw"}).get_json()
        assert first["require2fa"] is True
        assert "token" not in first

        second = client.post('/api/auth/2fa/verify', json={
            "tempToken": first["tempToken"], "code": pyotp.TOTP(secret).now(),
        })
        assert second.status_code == 200
        assert second.get_json()["token"]

        replay = client.post('/api/auth/2fa/verify', json={
            "tempToken": first["tempToken"], "code": pyotp.TOTP(secret).now(),
        })
        assert replay.status_code == 401

    def test_verify_token(self, client, user_headers):
        response = client.get('/api/auth/verify', headers=user_headers)
        assert response.get_json()["valid"] is True
        assert response.get_json()["user"]["uid"] == "alice"

    def test_verify_rejects_garbage(self, client):
        response = client.get('/api/auth/verify', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401


# =============================================================================
# Self-service
# =============================================================================


class TestUserRoutes:
    def test_requires_session(self, client):
        response = client.get('/api/user/profile')
        assert response.status_code == 401
        assert response.get_json()["error"] == "Missing authorization token"

    def test_get_profile(self, client, user_headers, directory, make_user):
        directory.find_user.return_value = make_user("alice")
        response = client.get('/api/user/profile', headers=user_headers)
        assert response.status_code == 200
        assert response.get_json()["mail"] == "alice@example.test"

    def test_update_profile_audited(self, client, user_headers, management, sidecar):
        response = client.put('/api/user/profile', headers=user_headers,
                              json={"mail": "new@example.test", "displayName": "Alice N"})

        assert response.get_json()["source"] == "management"
        management.update_user.assert_called_once_with(
            {"uid": "alice", "mail": "new@example.test", "displayName": "Alice N"}
        )
        assert [e.action for e in sidecar.get_audit_events(uid="alice")] == ["UPDATE_PROFILE"]

    def test_change_password_short(self, client, user_headers, directory, make_user):
        directory.authenticate.return_value = make_user("alice")
        response = client.post('/api/user/password', headers=user_headers,
                               json={"currentPassword": "old", "newPassword": "short"})
        assert response.status_code == 400
        directory.change_password.assert_not_called()

    def test_change_password(self, client, user_headers, directory, make_user):
        directory.authenticate.return_value = make_user("alice")
        response = client.post('/api/user/password', headers=user_headers,
                               json={"currentPassword": "old-password", "newPassword": "n3w-passw0rd"})
        assert response.status_code == 200
        directory.change_password.assert_called_once()

    def test_two_factor_enrollment(self, client, user_headers, sidecar):
        setup = client.post('/api/user/2fa/setup', headers=user_headers).get_json()
        assert set(setup) == {"secret", "otpauthUrl", "qrCode"}

        response = client.post('/api/user/2fa/enable', headers=user_headers, json={
            "secret": setup["secret"], "code": pyotp.TOTP(setup["secret"]).now(),
        })

        assert response.status_code == 200
        assert sidecar.get_security_profile("alice").two_factor_enabled is True

    def test_own_logs_only(self, client, user_headers, sidecar):
        sidecar.append_audit("alice", "LOGIN", "User logged in")
        sidecar.append_audit("bob", "LOGIN", "User logged in")

        logs = client.get('/api/user/logs', headers=user_headers).get_json()

        assert [e["uid"] for e in logs] == ["alice"]

    def test_logs_limit_zero_is_empty(self, client, user_headers, sidecar):
        sidecar.append_audit("alice", "LOGIN", "User logged in")
        logs = client.get('/api/user/logs?limit=0', headers=user_headers).get_json()
        assert logs == []


# =============================================================================
# Administration
# =============================================================================


class TestAdminRoutes:
    def test_non_admin_forbidden(self, client, user_headers):
        response = client.get('/api/admin/users', headers=user_headers)
        assert response.status_code == 403
        assert response.get_json()["error"] == "Admin access required"

    def test_list_users(self, client, admin_headers, management):
        management.get_users.return_value = [
            {"id": "alice", "email": "alice@example.test", "displayName": "Alice", "groups": []},
        ]
        response = client.get('/api/admin/users', headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()[0]["source"] == "management"

    def test_list_users_filter_goes_to_directory(self, client, admin_headers, management, directory, make_user):
        directory.search.return_value = [make_user("bob")]
        response = client.get('/api/admin/users?filter=(uid=bob)', headers=admin_headers)
        assert response.get_json()[0]["uid"] == "bob"
        management.get_users.assert_not_called()
        directory.search.assert_called_once_with("(uid=bob)")

    def test_list_users_both_down(self, client, admin_headers, management, directory):
        management.get_users.side_effect = ManagementApiError("refused", cause="connection_refused")
        directory.search.side_effect = DirectoryError("Directory unreachable", cause="timeout")
        response = client.get('/api/admin/users', headers=admin_headers)
        assert response.status_code == 502
        assert response.get_json()["cause"] == "timeout"

    def test_create_user(self, client, admin_headers, management, sidecar):
        response = client.post('/api/admin/users', headers=admin_headers,
                               json={"uid": "dave", "mail": "dave@example.test", "cn": "Dave"})
        assert response.status_code == 201
        management.create_user.assert_called_once()
        assert [e.action for e in sidecar.get_audit_events(uid="admin")] == ["CREATE_USER"]

    def test_update_user_partial(self, client, admin_headers, management, directory, make_user):
        management.update_user.side_effect = ManagementApiError("Email taken", cause="graphql_error")
        directory.find_user.return_value = make_user("alice")

        response = client.put('/api/admin/users/alice', headers=admin_headers,
                              json={"mail": "x@example.test", "password": "n3w-passw0rd"})

        assert response.status_code == 207
        assert response.get_json()["succeeded"] == ["directory"]

    def test_update_user_all_legs_fail(self, client, admin_headers, management):
        management.update_user.side_effect = ManagementApiError("Email taken", cause="graphql_error")
        response = client.put('/api/admin/users/alice', headers=admin_headers, json={"mail": "x@example.test"})
        assert response.status_code == 502
        assert response.get_json()["error"] == "Email taken"

    def test_delete_user(self, client, admin_headers, management):
        response = client.delete('/api/admin/users/alice', headers=admin_headers)
        assert response.status_code == 200
        management.delete_user.assert_called_once_with("alice")

    def test_import_csv(self, client, admin_headers, management, sidecar):
        csv_body = b"uid,password,mail,cn\nu1,pw1,u1@example.test,User One\nu2,,,\nu3,pw3,,\n"

        response = client.post(
            '/api/admin/users/import',
            headers=admin_headers,
            data={'file': (io.BytesIO(csv_body), 'users.csv')},
            content_type='multipart/form-data',
        )

        body = response.get_json()
        assert response.status_code == 200
        assert (body["success"], body["failed"]) == (2, 1)
        assert body["errors"][0]["uid"] == "u2"
        assert management.create_user.call_count == 2
        assert [e.action for e in sidecar.get_audit_events(uid="admin")] == ["IMPORT_USERS"]

    def test_import_requires_file(self, client, admin_headers):
        response = client.post('/api/admin/users/import', headers=admin_headers,
                               data={}, content_type='multipart/form-data')
        assert response.status_code == 400
