"""
Pytest configuration for meetgate tests.

Every test gets its own SQLite database under tmp_path; services are built
against that engine explicitly, so nothing touches the process-wide engine.
"""

import os
import tempfile

# Must be set before any app imports (Settings() is read at import time)
_test_dir = tempfile.mkdtemp(prefix="meetgate_test_")
os.environ.setdefault("MEETGATE_DATA_DIRECTORY", _test_dir)
os.environ.setdefault("MEETGATE_LOG_DIRECTORY", os.path.join(_test_dir, "logs"))
os.environ.setdefault("MEETGATE_ENCRYPTION_KEY", "test-encryption-key-0123456789abcdef")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from app.config import Settings
from app.core.crypto import CryptoService
from app.core.database import build_engine, get_session_context, import_models
from app.core.errors.registry import error_registry
from app.main import create_app
from app.models.user import User
from app.services.api_key_service import ApiKeyStore
from app.services.credential_vault import CredentialVault
from app.services.request_logger import RequestLogger
from app.services.session_service import DatabaseSessionVerifier
from app.services.tool_executor import ToolExecutor

TEST_SECRET = "test-encryption-key-0123456789abcdef"
TEST_PEPPER = "test-hmac-pepper"

error_registry.load()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path}/meetgate-test.db")
    import_models()
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        encryption_key=TEST_SECRET,
        apikey_hmac_secret=TEST_PEPPER,
        environment="production",
        data_directory=str(tmp_path),
        database_url=f"sqlite:///{tmp_path}/meetgate-test.db",
        usage_update_workers=2,
    )


@pytest.fixture
def crypto():
    return CryptoService(TEST_SECRET)


@pytest.fixture
def api_keys(engine):
    return ApiKeyStore(TEST_PEPPER, engine=engine)


@pytest.fixture
def sessions(engine):
    return DatabaseSessionVerifier(TEST_PEPPER, engine=engine)


@pytest.fixture
def vault(crypto, engine):
    return CredentialVault(crypto, engine=engine)


@pytest.fixture
def request_logger(engine):
    return RequestLogger(engine=engine)


@pytest.fixture
def make_user(engine):
    """Factory: insert a user and return it (detached, attributes loaded)."""
    counter = {"n": 0}

    def _make(email=None, name=None, is_admin=False):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name,
            is_admin=is_admin,
        )
        with get_session_context(engine) as session:
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
        return user

    return _make


@pytest.fixture
def session_headers(sessions):
    """Factory: Bearer headers for a fresh login session of ``user``."""

    def _headers(user):
        token = sessions.issue(user.id, timedelta(hours=1))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def valid_descriptor():
    return {
        "client_id": "1234-abc.apps.googleusercontent.com",
        "client_secret": "GOCSPX-not-a-real-secret",
        "redirect_uris": ["http://localhost:3000/callback"],
    }


class StubToolExecutor(ToolExecutor):
    """Answers every request with a fixed result; records the calls."""

    def __init__(self, result=None):
        self.result = result if result is not None else {"content": [{"type": "text", "text": "done"}]}
        self.calls = []

    async def execute(self, credentials, request):
        self.calls.append((credentials, request))
        return self.result


@pytest.fixture
def stub_executor():
    return StubToolExecutor()


@pytest.fixture
def client(test_settings, engine, stub_executor):
    """TestClient with lifespan run against the per-test engine."""
    app = create_app(test_settings, engine=engine, tool_executor=stub_executor)
    with TestClient(app) as test_client:
        yield test_client
