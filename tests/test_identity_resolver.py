"""
Tests for IdentityResolver and DatabaseSessionVerifier - API key precedence,
no fall-through on a bad key, session token sources, expiry and revocation.
"""

from datetime import timedelta

import pytest
from sqlmodel import select

from app.core.database import get_session_context
from app.core.timeutils import ensure_utc, utcnow
from app.models.user import UserSession
from app.services.container import build_services
from app.services.identity_resolver import (
    IdentityFailure,
    IdentityResolver,
    extract_session_token,
)
from app.services.session_service import DatabaseSessionVerifier
from app.services.tool_executor import ToolExecutor


@pytest.fixture
def resolver(api_keys, sessions):
    return IdentityResolver(api_keys, sessions)


# ---------------------------------------------------------------------------
# Token extraction
# ---------------------------------------------------------------------------

class TestExtractSessionToken:
    def test_bearer(self):
        assert extract_session_token({"authorization": "Bearer abc123"}) == "abc123"

    def test_bearer_case_insensitive_scheme(self):
        assert extract_session_token({"authorization": "bearer abc123"}) == "abc123"

    def test_non_bearer_ignored(self):
        assert extract_session_token({"authorization": "Basic Zm9vOmJhcg=="}) is None

    def test_cookie(self):
        headers = {"cookie": "theme=dark; session_token=tok-1; other=x"}
        assert extract_session_token(headers) == "tok-1"

    def test_custom_cookie_name(self):
        assert extract_session_token({"cookie": "sid=tok-2"}, cookie_name="sid") == "tok-2"

    def test_nothing(self):
        assert extract_session_token({}) is None


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class TestResolve:
    def test_valid_api_key(self, resolver, api_keys, make_user):
        user = make_user(name="Ada")
        generated = api_keys.generate(user.id)
        result = resolver.resolve({"x-api-key": generated.raw_key})
        assert result.ok
        assert result.identity.user_id == user.id
        assert result.identity.via == "api_key"
        assert result.identity.display == "Ada"
        assert result.identity.api_key_id == generated.id

    def test_invalid_api_key_is_forbidden(self, resolver):
        result = resolver.resolve({"x-api-key": "mgk_" + "0" * 64})
        assert not result.ok
        assert result.failure is IdentityFailure.FORBIDDEN

    def test_invalid_api_key_does_not_fall_through_to_session(self, resolver, sessions, make_user):
        user = make_user()
        token = sessions.issue(user.id, timedelta(hours=1))
        result = resolver.resolve({"x-api-key": "bogus", "authorization": f"Bearer {token}"})
        assert result.failure is IdentityFailure.FORBIDDEN

    def test_empty_api_key_header_is_forbidden(self, resolver):
        assert resolver.resolve({"x-api-key": ""}).failure is IdentityFailure.FORBIDDEN

    def test_revoked_key_is_forbidden(self, resolver, api_keys, make_user):
        user = make_user()
        generated = api_keys.generate(user.id)
        api_keys.revoke(generated.id, user.id)
        assert resolver.resolve({"x-api-key": generated.raw_key}).failure is IdentityFailure.FORBIDDEN

    def test_session_bearer(self, resolver, sessions, make_user):
        user = make_user(email="sam@example.com", is_admin=True)
        token = sessions.issue(user.id, timedelta(hours=1))
        result = resolver.resolve({"authorization": f"Bearer {token}"})
        assert result.ok
        assert result.identity.via == "session"
        assert result.identity.display == "sam@example.com"
        assert result.identity.is_admin is True

    def test_session_cookie(self, resolver, sessions, make_user):
        user = make_user()
        token = sessions.issue(user.id, timedelta(hours=1))
        result = resolver.resolve({"cookie": f"session_token={token}"})
        assert result.ok
        assert result.identity.user_id == user.id

    def test_no_credentials_is_unauthorized(self, resolver):
        result = resolver.resolve({})
        assert result.failure is IdentityFailure.UNAUTHORIZED

    def test_unknown_session_is_unauthorized(self, resolver):
        result = resolver.resolve({"authorization": "Bearer not-a-session"})
        assert result.failure is IdentityFailure.UNAUTHORIZED


# ---------------------------------------------------------------------------
# Session verifier
# ---------------------------------------------------------------------------

class TestDatabaseSessionVerifier:
    def test_issue_and_verify(self, sessions, make_user):
        user = make_user()
        token = sessions.issue(user.id, timedelta(hours=1))
        verified = sessions.verify(token)
        assert verified is not None
        assert verified.id == user.id

    def test_expired(self, sessions, make_user):
        user = make_user()
        token = sessions.issue(user.id, timedelta(seconds=-1))
        assert sessions.verify(token) is None

    def test_revoked(self, sessions, make_user):
        user = make_user()
        token = sessions.issue(user.id, timedelta(hours=1))
        assert sessions.revoke(token) is True
        assert sessions.verify(token) is None
        assert sessions.revoke(token) is False

    @pytest.mark.parametrize("token", ["", "x" * 1000])
    def test_rejects_empty_and_oversized(self, sessions, token):
        assert sessions.verify(token) is None

    def test_default_ttl(self, engine, make_user):
        verifier = DatabaseSessionVerifier("pepper", engine=engine, default_ttl=timedelta(minutes=30))
        user = make_user()
        verifier.issue(user.id)
        assert 25 * 60 < _expires_in(engine, user.id) <= 30 * 60

    def test_ttl_from_settings(self, engine, make_user, test_settings, mocker):
        settings = test_settings.model_copy(update={"session_ttl_hours": 2})
        services = build_services(settings, engine=engine, tool_executor=mocker.Mock(spec=ToolExecutor))
        try:
            user = make_user()
            token = services.sessions.issue(user.id)
            assert services.sessions.verify(token).id == user.id
            assert 115 * 60 < _expires_in(engine, user.id) <= 120 * 60
        finally:
            services.usage_executor.shutdown(wait=True)


def _expires_in(engine, user_id) -> float:
    with get_session_context(engine) as session:
        record = session.exec(select(UserSession).where(UserSession.user_id == user_id)).one()
        return (ensure_utc(record.expires_at) - utcnow()).total_seconds()
