"""
API Key Store - issue, verify, revoke and list gateway API keys.

Key format: mgk_<64 lowercase hex chars>  (256 bits of entropy)
Storage: HMAC-SHA256(pepper, raw_key). The raw key is returned once by
generate() and never persisted or logged; listings show the stored preview.

Usage accounting (usage_count / last_used_at) is best-effort: it runs as one
atomic UPDATE on the usage executor and its failures are logged, never
raised to the caller.
"""

import hashlib
import hmac
import logging
import re
import secrets
from concurrent.futures import Executor, Future, wait
from datetime import timedelta
from threading import Lock
from typing import Dict, List, Optional, Set

from sqlalchemy import func, update
from sqlalchemy.engine import Engine
from sqlmodel import select

from app.core.database import get_engine, get_session_context
from app.core.timeutils import utcnow
from app.models.api_key import ApiKey, ApiKeyInfo, GeneratedApiKey, VerifiedApiKey

logger = logging.getLogger(__name__)

KEY_PREFIX = "mgk_"
KEY_SECRET_BYTES = 32
KEY_PATTERN = re.compile(r"^mgk_[a-f0-9]{64}$")
RECENTLY_ACTIVE_DAYS = 30


def make_preview(raw_key: str) -> str:
    """First 8 and last 4 characters of a key, e.g. ``mgk_1a2b...9f0e``."""
    return f"{raw_key[:8]}...{raw_key[-4:]}"


class ApiKeyStore:
    """API key lifecycle backed by the ``api_keys`` table.

    Args:
        hmac_secret: Pepper for key hashing. Must be non-empty.
        engine: SQLAlchemy engine; defaults to the process-wide engine.
        usage_executor: Executor for best-effort usage updates. When None the
            update runs inline after verification.
    """

    def __init__(
        self,
        hmac_secret: str,
        engine: Optional[Engine] = None,
        usage_executor: Optional[Executor] = None,
    ):
        if not hmac_secret:
            raise ValueError("ApiKeyStore requires a non-empty HMAC secret")
        self._pepper = hmac_secret.encode()
        self._engine = engine
        self._usage_executor = usage_executor
        self._pending: Set[Future] = set()
        self._pending_lock = Lock()

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def hash_key(self, raw_key: str) -> str:
        return hmac.new(self._pepper, raw_key.encode(), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def generate(self, user_id: str) -> GeneratedApiKey:
        """Create a key for user_id. The returned raw_key is shown ONCE."""
        raw_key = KEY_PREFIX + secrets.token_hex(KEY_SECRET_BYTES)
        record = ApiKey(
            user_id=user_id,
            key_hash=self.hash_key(raw_key),
            key_preview=make_preview(raw_key),
        )
        with get_session_context(self.engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)

        logger.info("API key created: id=%s user=%s preview=%s", record.id, user_id, record.key_preview)
        return GeneratedApiKey(
            id=record.id,
            raw_key=raw_key,
            preview=record.key_preview,
            created_at=record.created_at,
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, raw_key: str) -> Optional[VerifiedApiKey]:
        """Return the key's owner, or None for any kind of invalid key.

        Wrong secret, revoked key and malformed input are indistinguishable
        to the caller.
        """
        if not isinstance(raw_key, str) or not KEY_PATTERN.match(raw_key):
            return None

        key_hash = self.hash_key(raw_key)
        with get_session_context(self.engine) as session:
            record = session.exec(
                select(ApiKey).where(ApiKey.key_hash == key_hash)
            ).first()
            if record is None or not record.is_active:
                return None
            if not hmac.compare_digest(record.key_hash, key_hash):
                return None
            verified = VerifiedApiKey(id=record.id, user_id=record.user_id)

        self._schedule_usage_update(verified.id)
        return verified

    def _schedule_usage_update(self, key_id: str) -> None:
        if self._usage_executor is None:
            self._record_usage(key_id)
            return
        try:
            future = self._usage_executor.submit(self._record_usage, key_id)
        except RuntimeError as exc:
            # Executor already shut down
            logger.warning("API key usage update not scheduled for %s: %s", key_id, exc)
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _record_usage(self, key_id: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    update(ApiKey)
                    .where(ApiKey.id == key_id)
                    .values(
                        usage_count=ApiKey.usage_count + 1,
                        last_used_at=utcnow(),
                    )
                )
        except Exception as exc:
            logger.warning("API key usage update failed for %s: %s", key_id, exc)

    def flush_usage_updates(self, timeout: Optional[float] = None) -> None:
        """Block until every scheduled usage update has run."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    # ------------------------------------------------------------------
    # Revoke / list / stats
    # ------------------------------------------------------------------

    def revoke(self, key_id: str, requesting_user_id: str) -> bool:
        """Deactivate a key owned by requesting_user_id.

        One conditional UPDATE; False for unknown and foreign keys alike.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                update(ApiKey)
                .where(ApiKey.id == key_id)
                .where(ApiKey.user_id == requesting_user_id)
                .values(is_active=False, revoked_at=utcnow())
            )
            revoked = result.rowcount > 0

        if revoked:
            logger.info("API key revoked: id=%s user=%s", key_id, requesting_user_id)
        return revoked

    def list_for_user(self, user_id: str) -> List[ApiKeyInfo]:
        """All keys of user_id, newest first."""
        with get_session_context(self.engine) as session:
            records = session.exec(
                select(ApiKey)
                .where(ApiKey.user_id == user_id)
                .order_by(ApiKey.created_at.desc())
            ).all()
            return [
                ApiKeyInfo(
                    id=r.id,
                    preview=r.key_preview,
                    is_active=r.is_active,
                    created_at=r.created_at,
                    last_used_at=r.last_used_at,
                    usage_count=r.usage_count,
                    revoked_at=r.revoked_at,
                )
                for r in records
            ]

    def stats(self) -> Dict[str, int]:
        cutoff = utcnow() - timedelta(days=RECENTLY_ACTIVE_DAYS)
        with get_session_context(self.engine) as session:
            total = session.exec(select(func.count()).select_from(ApiKey)).one()
            active = session.exec(
                select(func.count()).select_from(ApiKey).where(ApiKey.is_active == True)  # noqa: E712
            ).one()
            recent = session.exec(
                select(func.count())
                .select_from(ApiKey)
                .where(ApiKey.is_active == True)  # noqa: E712
                .where(ApiKey.last_used_at >= cutoff)
            ).one()
        return {"totalKeys": total, "activeKeys": active, "recentlyActive": recent}
