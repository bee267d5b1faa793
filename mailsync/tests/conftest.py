"""
Pytest fixtures for mailsync tests.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from mailsync.config import config, state
from mailsync.database import Database
from mailsync.oauth import CallbackResult, Credential, CredentialStore
from mailsync.providers import EmailAddress, NormalizedMessage, ProviderType
from mailsync.server import app
from mailsync.services import init_sync_engine


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    if os.path.exists(f.name):
        os.unlink(f.name)


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def test_db(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db


@pytest.fixture
def save_credential(test_db):
    """Store a credential for a provider, expiring ``expires_in`` from now."""
    def _save(provider="gmail", expires_in=timedelta(hours=1),
              access_token="access-1", refresh_token="refresh-1"):
        credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + expires_in,
        )
        CredentialStore(test_db.credentials, provider).store(credential)
        return credential
    return _save


# ─────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────

class FakeCallbackServer:
    """Stands in for OAuthCallbackServer without binding a socket."""

    def __init__(self, outcome=None, port=49152):
        # outcome(expected_state) returns a CallbackResult or raises;
        # None waits until cancelled
        self._outcome = outcome
        self.port = port
        self.started = False
        self.stopped = False
        self.expected_state = None

    async def start(self):
        self.started = True
        return self.port

    def get_callback_url(self):
        return f"http://127.0.0.1:{self.port}/callback"

    async def wait_for_callback(self, expected_state, timeout=300):
        self.expected_state = expected_state
        if self._outcome is None:
            await asyncio.Event().wait()
        return self._outcome(expected_state)

    async def stop(self):
        self.stopped = True


class FakeProvider:
    """Provider double that returns canned messages."""

    def __init__(self, provider_type=ProviderType.GMAIL, messages=(),
                 authenticated=True, error=None, last_error=None):
        self.provider_type = provider_type
        self.messages = list(messages)
        self.authenticated = authenticated
        self.error = error
        self.list_error = last_error
        self.last_error = None
        self.calls = []
        self.gate: asyncio.Event | None = None

    @property
    def name(self):
        return self.provider_type.value

    def is_authenticated(self):
        return self.authenticated

    async def get_starred_messages(self, since=None):
        self.calls.append(since)
        self.last_error = self.list_error
        # Yield like a real network call would
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return list(self.messages)


class FakeNoteCreator:
    """Records created notes; ids in ``fail_ids`` fail to materialize."""

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.created = []

    async def create_note(self, message):
        if message.id in self.fail_ids:
            return None
        self.created.append(message)
        return Path(f"/notes/{message.id}.md")


@pytest.fixture
def make_message():
    """Build a normalized message."""
    def _make(message_id, source=ProviderType.GMAIL, subject="Hello",
              received_at=None, body_html="<p>Hi</p>", body_text=None):
        return NormalizedMessage(
            id=message_id,
            source=source,
            subject=subject,
            sender=EmailAddress(name="Alice", email="alice@example.com"),
            to=(EmailAddress(name="Bob", email="bob@example.com"),),
            cc=(),
            received_at=received_at or datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc),
            snippet="Hi",
            body_html=body_html,
            body_text=body_text,
            web_link=f"https://mail.example.com/{message_id}",
            has_attachments=False,
        )
    return _make


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def fake_notes():
    return FakeNoteCreator


@pytest.fixture
def fake_callback_server():
    return FakeCallbackServer


@pytest.fixture
def callback_success():
    """Callback outcome that echoes the expected state back with a code."""
    return lambda expected_state: CallbackResult(code="auth-code", state=expected_state)


# ─────────────────────────────────────────────────────────────
# API client
# ─────────────────────────────────────────────────────────────

def _build_client(monkeypatch, temp_db_path, temp_data_dir, **auth_kwargs):
    monkeypatch.setattr(config, "DATA_DIR", temp_data_dir)
    monkeypatch.setattr(config, "NOTES_DIR", temp_data_dir / "notes")
    monkeypatch.setattr(config, "AUTH_API_KEY", "")
    monkeypatch.setattr(config, "GMAIL_ENABLED", False)
    monkeypatch.setattr(config, "OUTLOOK_ENABLED", False)

    init_sync_engine(state, Database(temp_db_path), **auth_kwargs)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def restore_state():
    """Snapshot and restore the shared application state."""
    original = {
        name: getattr(state, name)
        for name in ("db", "ledger", "note_creator", "orchestrator", "scheduler")
    }
    original_providers = state.providers
    original_auth_tasks = state.auth_tasks
    original_auth_errors = state.auth_errors
    state.providers = {}
    state.auth_tasks = {}
    state.auth_errors = {}

    yield state

    for name, value in original.items():
        setattr(state, name, value)
    state.providers = original_providers
    state.auth_tasks = original_auth_tasks
    state.auth_errors = original_auth_errors


@pytest.fixture
def client(monkeypatch, temp_db_path, temp_data_dir, restore_state):
    """Create a test client with isolated database, ledger and notes folder."""
    monkeypatch.setattr(config, "GMAIL_CLIENT_ID", "")
    monkeypatch.setattr(config, "OUTLOOK_CLIENT_ID", "")

    with _build_client(monkeypatch, temp_db_path, temp_data_dir) as test_client:
        yield test_client


@pytest.fixture
def configured_client(monkeypatch, temp_db_path, temp_data_dir, restore_state):
    """Test client whose Gmail app is configured; OAuth flows never complete."""
    monkeypatch.setattr(config, "GMAIL_CLIENT_ID", "gmail-client")
    monkeypatch.setattr(config, "OUTLOOK_CLIENT_ID", "")

    opened = []
    test_client = _build_client(
        monkeypatch,
        temp_db_path,
        temp_data_dir,
        open_browser=opened.append,
        server_factory=lambda port: FakeCallbackServer(),
    )
    with test_client:
        test_client.opened_urls = opened
        yield test_client
