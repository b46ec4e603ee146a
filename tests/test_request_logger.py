"""
Tests for RequestLogger - start/finish lifecycle, aggregates, recent list,
per-user history and retention purge.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from app.core.database import get_session_context
from app.core.timeutils import utcnow
from app.models.request_log import RequestLogEntry
from app.services.request_logger import MAX_IP_ADDRESS, MAX_USER_AGENT


def _entry(engine, entry_id) -> RequestLogEntry:
    with get_session_context(engine) as session:
        return session.get(RequestLogEntry, entry_id)


def _age(engine, entry_id, days):
    with engine.begin() as conn:
        conn.execute(
            update(RequestLogEntry)
            .where(RequestLogEntry.id == entry_id)
            .values(timestamp=utcnow() - timedelta(days=days))
        )


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_start_creates_unfinalized_entry(self, request_logger, make_user, engine):
        user = make_user()
        entry_id = request_logger.start(user.id, "tools/call", "calendar_v3_list_events", "10.0.0.1", "claude/1.0")
        entry = _entry(engine, entry_id)
        assert entry.user_id == user.id
        assert entry.method == "tools/call"
        assert entry.tool_name == "calendar_v3_list_events"
        assert entry.ip_address == "10.0.0.1"
        assert entry.user_agent == "claude/1.0"
        assert entry.success is None
        assert entry.duration_ms is None

    def test_finish_sets_outcome(self, request_logger, make_user, engine):
        entry_id = request_logger.start(make_user().id, "tools/list")
        assert request_logger.finish(entry_id, True, 42) is True
        entry = _entry(engine, entry_id)
        assert entry.success is True
        assert entry.duration_ms == 42
        assert entry.error_message is None

    def test_finish_only_once(self, request_logger, make_user, engine):
        entry_id = request_logger.start(make_user().id, "tools/list")
        request_logger.finish(entry_id, False, 10, "boom")
        assert request_logger.finish(entry_id, True, 99) is False
        entry = _entry(engine, entry_id)
        assert entry.success is False
        assert entry.error_message == "boom"

    def test_finish_unknown_entry(self, request_logger):
        assert request_logger.finish("missing", True, 1) is False

    def test_error_message_truncated(self, request_logger, make_user, engine):
        entry_id = request_logger.start(make_user().id, "tools/call")
        request_logger.finish(entry_id, False, 1, "x" * 5000)
        assert len(_entry(engine, entry_id).error_message) == 2000

    def test_record_writes_final_entry(self, request_logger, make_user, engine):
        entry_id = request_logger.record(make_user().id, "tools/call", False, 7, tool_name="meet_v2_get_space")
        entry = _entry(engine, entry_id)
        assert entry.success is False
        assert entry.duration_ms == 7

    def test_client_fields_bounded_to_columns(self, request_logger, make_user, engine):
        user = make_user()
        started = request_logger.start(user.id, "tools/list", None, "1" * 200, "A" * 2000)
        recorded = request_logger.record(
            user.id, "tools/list", True, 1, ip_address="2" * 200, user_agent="B" * 2000
        )
        for entry_id in (started, recorded):
            entry = _entry(engine, entry_id)
            assert len(entry.ip_address) == MAX_IP_ADDRESS
            assert len(entry.user_agent) == MAX_USER_AGENT


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

class TestAnalytics:
    def test_empty_window(self, request_logger):
        result = request_logger.analytics(7)
        assert result["totalRequests"] == 0
        assert result["successRate"] == 0
        assert result["toolsUsage"] == {}
        assert result["timeRange"] == "7d"

    def test_counts_and_rate(self, request_logger, make_user):
        user = make_user()
        request_logger.record(user.id, "tools/call", True, 5, tool_name="calendar_v3_list_events")
        request_logger.record(user.id, "tools/call", True, 5, tool_name="calendar_v3_list_events")
        request_logger.record(user.id, "tools/call", False, 5, tool_name="meet_v2_create_space")
        request_logger.record(user.id, "tools/list", True, 5)

        result = request_logger.analytics(7)
        assert result["totalRequests"] == 4
        assert result["successfulRequests"] == 3
        assert result["successRate"] == pytest.approx(0.75)
        assert result["toolsUsage"] == {"calendar_v3_list_events": 2, "meet_v2_create_space": 1}

    def test_unfinalized_entries_count_as_not_successful(self, request_logger, make_user):
        user = make_user()
        request_logger.start(user.id, "tools/list")
        request_logger.record(user.id, "tools/list", True, 1)
        result = request_logger.analytics(7)
        assert result["totalRequests"] == 2
        assert result["successRate"] == pytest.approx(0.5)

    def test_window_excludes_old_entries(self, request_logger, make_user, engine):
        user = make_user()
        old = request_logger.record(user.id, "tools/call", True, 1, tool_name="calendar_v3_get_event")
        _age(engine, old, 10)
        request_logger.record(user.id, "tools/call", True, 1, tool_name="calendar_v3_list_events")

        result = request_logger.analytics(7)
        assert result["totalRequests"] == 1
        assert "calendar_v3_get_event" not in result["toolsUsage"]

    def test_unique_users_and_requests_by_day(self, request_logger, make_user, engine):
        alice, bob = make_user(), make_user()
        request_logger.record(alice.id, "tools/list", True, 1)
        request_logger.record(alice.id, "tools/list", True, 1)
        yesterday = request_logger.record(bob.id, "tools/list", True, 1)
        _age(engine, yesterday, 1)

        result = request_logger.analytics(7)
        assert result["uniqueUsers"] == 2
        today = utcnow().date().isoformat()
        one_day_ago = (utcnow() - timedelta(days=1)).date().isoformat()
        assert result["requestsByDay"] == {one_day_ago: 1, today: 2}

    def test_empty_window_has_no_days(self, request_logger):
        result = request_logger.analytics(7)
        assert result["uniqueUsers"] == 0
        assert result["requestsByDay"] == {}

    def test_per_user_filter(self, request_logger, make_user):
        alice, bob = make_user(), make_user()
        request_logger.record(alice.id, "tools/call", True, 1, tool_name="meet_v2_get_space")
        request_logger.record(bob.id, "tools/call", False, 1, tool_name="calendar_v3_get_event")

        result = request_logger.analytics(7, user_id=alice.id)
        assert result["totalRequests"] == 1
        assert result["successRate"] == 1
        assert result["uniqueUsers"] == 1
        assert result["toolsUsage"] == {"meet_v2_get_space": 1}

    def test_dashboard_totals(self, request_logger, api_keys, vault, make_user, valid_descriptor, engine):
        alice, bob = make_user(), make_user()
        api_keys.generate(alice.id)
        revoked = api_keys.generate(bob.id)
        api_keys.revoke(revoked.id, bob.id)
        vault.store(alice.id, valid_descriptor)
        request_logger.record(alice.id, "tools/list", True, 1)
        old = request_logger.record(alice.id, "tools/list", True, 1)
        _age(engine, old, 30)

        assert request_logger.dashboard_totals() == {
            "totalUsers": 2,
            "totalApiKeys": 2,
            "activeApiKeys": 1,
            "totalCredentialRecords": 1,
            "recentRequests": 1,
        }


# ---------------------------------------------------------------------------
# Read path / retention
# ---------------------------------------------------------------------------

class TestRecentAndHistory:
    def test_recent_newest_first_with_display_name(self, request_logger, make_user, engine):
        named = make_user(email="ann@example.com", name="Ann")
        unnamed = make_user(email="bo@example.com")
        older = request_logger.record(named.id, "tools/list", True, 1)
        _age(engine, older, 1)
        request_logger.record(unnamed.id, "tools/call", False, 2, tool_name="meet_v2_get_space", error_message="nope")

        recent = request_logger.recent(50)
        assert [r["userName"] for r in recent] == ["bo@example.com", "Ann"]
        assert recent[0]["toolName"] == "meet_v2_get_space"
        assert recent[0]["errorMsg"] == "nope"
        assert recent[0]["duration"] == 2

    def test_recent_limit(self, request_logger, make_user):
        user = make_user()
        for _ in range(5):
            request_logger.record(user.id, "tools/list", True, 1)
        assert len(request_logger.recent(3)) == 3

    def test_history_for_user(self, request_logger, make_user):
        alice, bob = make_user(), make_user()
        request_logger.record(alice.id, "tools/list", True, 1)
        request_logger.record(bob.id, "tools/list", True, 1)
        history = request_logger.history_for_user(alice.id)
        assert len(history) == 1
        assert history[0]["userId"] == alice.id


class TestPurge:
    def test_purge_removes_only_old_entries(self, request_logger, make_user, engine):
        user = make_user()
        old = request_logger.record(user.id, "tools/list", True, 1)
        keep = request_logger.record(user.id, "tools/list", True, 1)
        _age(engine, old, 31)

        assert request_logger.purge_older_than(30) == 1
        assert _entry(engine, old) is None
        assert _entry(engine, keep) is not None

    def test_negative_days_rejected(self, request_logger):
        with pytest.raises(ValueError):
            request_logger.purge_older_than(-1)
