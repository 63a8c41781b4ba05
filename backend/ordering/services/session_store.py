"""
Storage for checkout sessions.

Sessions are short-lived and never hit the database. The in-memory store is
process-local: it is lost on restart and not shared between workers, so any
deployment with more than one process must use the Redis store instead.
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import Dict, Optional

import redis
from redis.exceptions import RedisError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ordering.config import settings
from ordering.schemas.checkout_schema import CheckoutSession
from ordering.utils.logging import get_logger
from ordering.utils.timeutils import as_utc, utcnow

logger = get_logger(__name__)


class CheckoutSessionStore(ABC):
    @abstractmethod
    def create(self, session: CheckoutSession) -> None:
        ...

    @abstractmethod
    def get(self, session_id: str) -> Optional[CheckoutSession]:
        ...

    @abstractmethod
    def save(self, session: CheckoutSession) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def sweep(self, now: datetime) -> int:
        """Drop sessions whose expiry has passed; returns how many went."""


class InMemoryCheckoutSessionStore(CheckoutSessionStore):
    def __init__(self):
        self._sessions: Dict[str, CheckoutSession] = {}
        self._lock = threading.Lock()

    def create(self, session: CheckoutSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            # callers get a copy; changes only land through save()
            return session.model_copy(deep=True) if session else None

    def save(self, session: CheckoutSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep(self, now: datetime) -> int:
        with self._lock:
            expired = [
                sid for sid, s in self._sessions.items() if now > as_utc(s.expires_at)
            ]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self):
        return len(self._sessions)


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(RedisError),
    )


class RedisCheckoutSessionStore(CheckoutSessionStore):
    """
    One JSON value per session under ``checkout:session:<id>``.

    Keys carry a TTL matching the session's absolute expiry, so Redis drops
    them on its own and sweep() has nothing to do.
    """

    key_prefix = "checkout:session:"

    def __init__(self, url: Optional[str] = None, client=None):
        self.redis = client or redis.Redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
        )

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def _ttl_seconds(self, session: CheckoutSession) -> int:
        remaining = (as_utc(session.expires_at) - utcnow()).total_seconds()
        return max(1, int(remaining) + 1)

    @redis_retry()
    def create(self, session: CheckoutSession) -> None:
        self.redis.set(
            self._key(session.id),
            session.model_dump_json(),
            ex=self._ttl_seconds(session),
        )

    @redis_retry()
    def get(self, session_id: str) -> Optional[CheckoutSession]:
        raw = self.redis.get(self._key(session_id))
        if raw is None:
            return None
        return CheckoutSession.model_validate_json(raw)

    @redis_retry()
    def save(self, session: CheckoutSession) -> None:
        # xx: never resurrect a session that already expired or was consumed
        self.redis.set(
            self._key(session.id),
            session.model_dump_json(),
            ex=self._ttl_seconds(session),
            xx=True,
        )

    @redis_retry()
    def delete(self, session_id: str) -> None:
        self.redis.delete(self._key(session_id))

    def sweep(self, now: datetime) -> int:
        return 0


@lru_cache(maxsize=1)
def get_session_store() -> CheckoutSessionStore:
    backend = settings.CHECKOUT_SESSION_BACKEND.lower()
    if backend == "redis":
        logger.info("Checkout sessions stored in Redis at %s", settings.REDIS_URL)
        return RedisCheckoutSessionStore()
    if backend != "memory":
        raise ValueError(f"Unknown CHECKOUT_SESSION_BACKEND: {backend}")
    logger.info("Checkout sessions stored in process memory")
    return InMemoryCheckoutSessionStore()
