"""
Request Logger - persistent log of gateway invocations plus the aggregates
behind the admin dashboard.

An invocation is written once at start (success/duration NULL) and finalized
exactly once; finish() never overwrites an already finalized entry.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlmodel import select

from app.core.database import get_engine, get_session_context
from app.core.timeutils import isoformat, utcnow
from app.models.api_key import ApiKey
from app.models.credential import CredentialRecord
from app.models.request_log import RequestLogEntry
from app.models.user import User

logger = logging.getLogger(__name__)

DASHBOARD_RECENT_DAYS = 7
MAX_ERROR_MESSAGE = 2000
# Column bounds for client-supplied values
MAX_IP_ADDRESS = 64
MAX_USER_AGENT = 512


def _truncate(value: Optional[str], limit: int = MAX_ERROR_MESSAGE) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


def _entry_to_dict(entry: RequestLogEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "method": entry.method,
        "toolName": entry.tool_name,
        "success": entry.success,
        "timestamp": isoformat(entry.timestamp),
        "duration": entry.duration_ms,
        "errorMsg": entry.error_message,
    }


class RequestLogger:
    """Writes and aggregates ``request_logs`` rows."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        method: str,
        tool_name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """Insert an unfinalized entry and return its id."""
        entry = RequestLogEntry(
            user_id=user_id,
            method=method,
            tool_name=tool_name,
            ip_address=_truncate(ip_address, MAX_IP_ADDRESS),
            user_agent=_truncate(user_agent, MAX_USER_AGENT),
        )
        with get_session_context(self.engine) as session:
            session.add(entry)
            session.commit()
            entry_id = entry.id

        logger.info(
            "Gateway request: user=%s method=%s tool=%s ip=%s",
            user_id, method, tool_name, ip_address,
        )
        return entry_id

    def finish(
        self,
        entry_id: str,
        success: bool,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> bool:
        """Finalize an entry. Returns False when it was unknown or already final."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(RequestLogEntry)
                .where(RequestLogEntry.id == entry_id)
                .where(RequestLogEntry.success.is_(None))
                .values(
                    success=success,
                    duration_ms=int(duration_ms),
                    error_message=_truncate(error_message),
                )
            )
            finalized = result.rowcount > 0

        if not finalized:
            logger.warning("Request log entry %s was not finalized (missing or already final)", entry_id)
        return finalized

    def record(
        self,
        user_id: str,
        method: str,
        success: bool,
        duration_ms: int,
        tool_name: Optional[str] = None,
        error_message: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """Write an already finalized entry in one insert."""
        entry = RequestLogEntry(
            user_id=user_id,
            method=method,
            tool_name=tool_name,
            success=success,
            duration_ms=int(duration_ms),
            error_message=_truncate(error_message),
            ip_address=_truncate(ip_address, MAX_IP_ADDRESS),
            user_agent=_truncate(user_agent, MAX_USER_AGENT),
        )
        with get_session_context(self.engine) as session:
            session.add(entry)
            session.commit()
            return entry.id

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def dashboard_totals(self) -> Dict[str, int]:
        since = utcnow() - timedelta(days=DASHBOARD_RECENT_DAYS)
        with get_session_context(self.engine) as session:
            def count(model, *criteria) -> int:
                stmt = select(func.count()).select_from(model)
                for criterion in criteria:
                    stmt = stmt.where(criterion)
                return session.exec(stmt).one()

            return {
                "totalUsers": count(User),
                "totalApiKeys": count(ApiKey),
                "activeApiKeys": count(ApiKey, ApiKey.is_active == True),  # noqa: E712
                "totalCredentialRecords": count(CredentialRecord),
                "recentRequests": count(RequestLogEntry, RequestLogEntry.timestamp >= since),
            }

    def analytics(self, window_days: int = 7, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Totals, per-tool and per-day counts over the trailing window.

        ``successRate`` is a 0..1 ratio over all entries in the window and is
        0 when there are none. With ``user_id`` only that user's entries count.
        """
        since = utcnow() - timedelta(days=window_days)
        criteria = [RequestLogEntry.timestamp >= since]
        if user_id is not None:
            criteria.append(RequestLogEntry.user_id == user_id)

        with get_session_context(self.engine) as session:
            def scalar(expr, *extra):
                stmt = select(expr).select_from(RequestLogEntry)
                for criterion in (*criteria, *extra):
                    stmt = stmt.where(criterion)
                return session.exec(stmt).one()

            total = scalar(func.count())
            successful = scalar(func.count(), RequestLogEntry.success == True)  # noqa: E712
            unique_users = scalar(func.count(func.distinct(RequestLogEntry.user_id)))

            tool_rows = session.exec(
                select(RequestLogEntry.tool_name, func.count())
                .where(*criteria)
                .where(RequestLogEntry.tool_name.is_not(None))
                .group_by(RequestLogEntry.tool_name)
                .order_by(func.count().desc())
            ).all()

            day = func.date(RequestLogEntry.timestamp)
            day_rows = session.exec(
                select(day, func.count())
                .where(*criteria)
                .group_by(day)
                .order_by(day)
            ).all()

        return {
            "totalRequests": total,
            "successfulRequests": successful,
            "successRate": (successful / total) if total else 0,
            "uniqueUsers": unique_users,
            "toolsUsage": {tool: n for tool, n in tool_rows},
            # SQLite returns the day as text, PostgreSQL as a date
            "requestsByDay": {str(d): n for d, n in day_rows},
            "timeRange": f"{window_days}d",
            "generatedAt": utcnow().isoformat(),
        }

    def recent(self, n: int = 50) -> List[Dict[str, Any]]:
        """Latest n entries across all users, with the user's display name."""
        with get_session_context(self.engine) as session:
            rows = session.exec(
                select(RequestLogEntry, User)
                .join(User, User.id == RequestLogEntry.user_id, isouter=True)
                .order_by(RequestLogEntry.timestamp.desc())
                .limit(n)
            ).all()
            result = []
            for entry, user in rows:
                item = _entry_to_dict(entry)
                item["userName"] = user.display if user else None
                result.append(item)
            return result

    def history_for_user(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        with get_session_context(self.engine) as session:
            entries = session.exec(
                select(RequestLogEntry)
                .where(RequestLogEntry.user_id == user_id)
                .order_by(RequestLogEntry.timestamp.desc())
                .limit(limit)
            ).all()
            return [_entry_to_dict(e) for e in entries]

    def purge_older_than(self, days: int) -> int:
        """Delete entries older than ``days``. Returns the number removed."""
        if days < 0:
            raise ValueError("days must be >= 0")
        cutoff = utcnow() - timedelta(days=days)
        with self.engine.begin() as conn:
            result = conn.execute(
                delete(RequestLogEntry).where(RequestLogEntry.timestamp < cutoff)
            )
            removed = result.rowcount

        logger.info("Purged %d request log entries older than %d days", removed, days)
        return removed
