"""
Key-value blob store backed by Redis, with an in-memory fallback.

Every blob is stored as JSON under a namespaced key. Writes are synchronous.
A failed write is logged and dropped: the caller's in-memory state remains
authoritative for the rest of the session.
"""

import json
import logging
from typing import Any, Dict, Optional

from yasasuma import config

logger = logging.getLogger(__name__)


class KeyValueStore:
    """JSON blob store keyed by name."""

    def __init__(self, redis_url: Optional[str] = None) -> None:
        self._redis = None
        self._mem: Dict[str, str] = {}
        redis_url = redis_url if redis_url is not None else config.REDIS_URL

        if redis_url:
            try:
                import redis

                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except Exception as e:
                logger.warning("Redis unavailable, using in-memory store: %s", e)
                self._redis = None

    @property
    def is_persistent(self) -> bool:
        return self._redis is not None

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded blob for key, or None when absent or unreadable."""
        try:
            if self._redis is not None:
                raw = self._redis.get(key)
            else:
                raw = self._mem.get(key)
        except Exception as e:
            logger.warning("Key-value read failed", extra={"key": key, "error": str(e)})
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding undecodable blob", extra={"key": key, "error": str(e)})
            return None

    def set(self, key: str, value: Any) -> bool:
        """Store value as JSON. Returns False when the write failed."""
        try:
            raw = json.dumps(value)
            if self._redis is not None:
                self._redis.set(key, raw)
            else:
                self._mem[key] = raw
            return True
        except Exception as e:
            logger.warning("Key-value write failed", extra={"key": key, "error": str(e)})
            return False

    def delete(self, key: str) -> None:
        try:
            if self._redis is not None:
                self._redis.delete(key)
        except Exception as e:
            logger.warning("Key-value delete failed", extra={"key": key, "error": str(e)})
        self._mem.pop(key, None)
