"""
Idempotency records in Redis: idempotency:{key} -> {"result": ..., "expiresAt": unix}.

Key derivation: sha256("{source}:{scope}:{external_reference}"), e.g.
derive_key("stripe", "checkout.session.completed", "cs_123").
"""
import hashlib
import json
import logging
import time
from typing import Any, Callable

import redis

from sitepress.core.config import settings

logger = logging.getLogger(__name__)

_PENDING = "__pending__"


def derive_key(source: str, scope: str, external_reference: str) -> str:
    content = f"{source}:{scope}:{external_reference}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class IdempotencyStore:
    def __init__(self, client: redis.Redis | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.default_ttl = settings.idempotency_ttl

    def _key(self, key: str) -> str:
        return f"idempotency:{key}"

    def check_and_set(self, key: str, ttl_seconds: int | None = None) -> bool:
        """Atomic operation: setnx + expire in one call. True if this caller owns the key."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        record = json.dumps({"result": _PENDING, "expiresAt": int(time.time()) + ttl})
        created = self.client.set(self._key(key), record, nx=True, ex=ttl)
        return bool(created)

    def get_result(self, key: str) -> Any | None:
        """Stored result, or None if absent or still in flight."""
        raw = self.client.get(self._key(key))
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("idempotency_record_corrupt", extra={"key": key})
            return None
        result = record.get("result")
        return None if result == _PENDING else result

    def store_result(self, key: str, result: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        record = json.dumps({"result": result, "expiresAt": int(time.time()) + ttl})
        self.client.set(self._key(key), record, ex=ttl)

    def release(self, key: str) -> None:
        """Drop a claim so a later retry can run (used when the guarded action failed)."""
        self.client.delete(self._key(key))

    def run_once(self, key: str, fn: Callable[[], Any], ttl_seconds: int | None = None) -> tuple[bool, Any]:
        """
        Run fn at most once per key. Returns (executed, result).
        A failing fn releases the key and re-raises so the caller's retry can try again.
        """
        if not self.check_and_set(key, ttl_seconds):
            logger.info("idempotency_hit", extra={"key": key})
            return False, self.get_result(key)
        try:
            result = fn()
        except Exception:
            self.release(key)
            raise
        self.store_result(key, result, ttl_seconds)
        return True, result
