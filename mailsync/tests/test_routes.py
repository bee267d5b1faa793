"""
Tests for the HTTP API.
"""

from mailsync.config import config, state
from mailsync.oauth import Credential
from mailsync.providers import ProviderType


class TestSyncRoutes:
    """Tests for sync trigger, status and settings."""

    def test_status_before_first_sync(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "idle"
        assert data["status_text"] == "Email Sync: Ready"
        assert data["in_progress"] is False
        assert data["last_sync_time"] == 0
        assert data["synced_count"] == 0
        assert data["last_result"] is None

    def test_sync_with_no_enabled_providers(self, client):
        response = client.post("/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["ran"] is True
        assert data["new_notes"] == 0
        assert data["message"] == "No providers enabled"

        status = client.get("/status").json()
        assert status["status"] == "done"
        assert status["last_result"]["message"] == "No providers enabled"

    def test_enabled_but_not_connected_is_skipped(self, client):
        client.put("/providers/gmail", json={"enabled": True})

        data = client.post("/sync").json()

        assert data["skipped_providers"] == ["gmail"]
        assert data["errors"] == 0

    def test_update_sync_interval(self, client):
        response = client.put("/settings/sync", json={"interval_minutes": 15})

        assert response.status_code == 200
        assert response.json()["auto_sync_interval_minutes"] == 15
        assert response.json()["auto_sync_running"] is True
        assert state.db.get_sync_interval(30) == 15

    def test_disable_auto_sync(self, client):
        response = client.put("/settings/sync", json={"interval_minutes": 0})

        assert response.status_code == 200
        assert response.json()["auto_sync_running"] is False

    def test_invalid_interval(self, client):
        response = client.put("/settings/sync", json={"interval_minutes": -5})
        assert response.status_code == 422


class TestProviderRoutes:
    """Tests for provider listing, toggling and connection."""

    def test_list_providers(self, client):
        response = client.get("/providers")

        assert response.status_code == 200
        providers = {p["name"]: p for p in response.json()}
        assert set(providers) == {"gmail", "outlook"}
        assert providers["gmail"]["enabled"] is False
        assert providers["gmail"]["authenticated"] is False
        assert providers["gmail"]["configured"] is False
        assert providers["gmail"]["auth_state"] == "unauthenticated"

    def test_enable_provider_is_persisted(self, client):
        response = client.put("/providers/outlook", json={"enabled": True})

        assert response.status_code == 200
        assert response.json()["enabled"] is True
        assert state.db.is_provider_enabled("outlook") is True

    def test_unknown_provider(self, client):
        assert client.put("/providers/yahoo", json={"enabled": True}).status_code == 404
        assert client.post("/providers/yahoo/connect").status_code == 404

    def test_connect_requires_client_id(self, client):
        response = client.post("/providers/gmail/connect")

        assert response.status_code == 400
        assert "GMAIL_CLIENT_ID" in response.json()["detail"]

    def test_connect_starts_flow_once(self, configured_client):
        response = configured_client.post("/providers/gmail/connect")
        assert response.status_code == 202
        assert response.json()["success"] is True

        # The fake callback never arrives, so the flow is still pending
        response = configured_client.post("/providers/gmail/connect")
        assert response.status_code == 409

        providers = {p["name"]: p for p in configured_client.get("/providers").json()}
        assert providers["gmail"]["configured"] is True
        assert providers["gmail"]["auth_state"] == "authenticating"
        assert len(configured_client.opened_urls) == 1

    def test_account_requires_connection(self, client):
        response = client.get("/providers/gmail/account")

        assert response.status_code == 401
        assert "not authenticated" in response.json()["detail"]

    def test_disconnect(self, client):
        provider = state.providers[ProviderType.GMAIL]
        blob = '{"accessToken": "a", "refreshToken": "r", "expiresAt": 0}'
        state.db.credentials.save("gmail", blob)
        provider.authenticator.credential = Credential.from_blob(blob)
        assert provider.is_authenticated()

        response = client.delete(f"/providers/{provider.name}/credentials")

        assert response.status_code == 200
        assert response.json()["authenticated"] is False
        assert state.db.credentials.get(provider.name) is None


class TestApiKey:
    """Tests for optional API key protection."""

    def test_rejects_missing_key(self, client, monkeypatch):
        monkeypatch.setattr(config, "AUTH_API_KEY", "secret")

        assert client.get("/status").status_code == 401
        assert client.get("/status", headers={"X-API-Key": "wrong"}).status_code == 401

    def test_accepts_valid_key(self, client, monkeypatch):
        monkeypatch.setattr(config, "AUTH_API_KEY", "secret")

        response = client.get("/status", headers={"X-API-Key": "secret"})
        assert response.status_code == 200
