"""
Short-lived confirmation codes for the re-edit flow: confirmation:{projectName} -> {code, expiresAt}.
Codes are six digits from `secrets`, single use, 5 minute TTL.
"""
import hmac
import json
import logging
import secrets
import time
from enum import Enum

import redis

from sitepress.core.config import settings

logger = logging.getLogger(__name__)


class CodeCheck(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


class ConfirmationCodeStore:
    def __init__(self, client: redis.Redis | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.ttl = settings.confirmation_code_ttl

    def _key(self, project_name: str) -> str:
        return f"confirmation:{project_name}"

    def issue(self, project_name: str) -> str:
        """Create (or replace) the project's code and return it."""
        code = str(secrets.randbelow(900_000) + 100_000)
        record = {"code": code, "expiresAt": int(time.time()) + self.ttl}
        self.client.set(self._key(project_name), json.dumps(record), ex=self.ttl)
        logger.info("confirmation_code_issued", extra={"project_name": project_name})
        return code

    def check(self, project_name: str, code: str) -> CodeCheck:
        raw = self.client.get(self._key(project_name))
        if not raw:
            return CodeCheck.MISSING
        record = json.loads(raw)
        if not hmac.compare_digest(str(record.get("code", "")), str(code)):
            return CodeCheck.MISMATCH
        if int(time.time()) > int(record.get("expiresAt", 0)):
            return CodeCheck.EXPIRED
        return CodeCheck.VALID

    def consume(self, project_name: str) -> None:
        self.client.delete(self._key(project_name))
