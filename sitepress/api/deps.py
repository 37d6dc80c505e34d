"""
FastAPI dependencies. Tests replace these through app.dependency_overrides.
"""
import hmac

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from sitepress.core.config import settings
from sitepress.db.session import get_db
from sitepress.orchestrator.factory import build_runner
from sitepress.orchestrator.runner import OrchestratorRunner
from sitepress.services.confirmation_codes.service import ConfirmationCodeStore
from sitepress.services.idempotency import IdempotencyStore
from sitepress.services.notifications.service import NotificationService
from sitepress.workers.queue import WorkQueue


async def raw_body(request: Request) -> bytes:
    """Exact request bytes, needed for signature checks."""
    return await request.body()


def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore()


def get_work_queue() -> WorkQueue:
    return WorkQueue()


def get_code_store() -> ConfirmationCodeStore:
    return ConfirmationCodeStore()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_runner(db: Session = Depends(get_db)) -> OrchestratorRunner:
    return build_runner(db)


def require_admin_key(x_admin_api_key: str | None = Header(None)) -> None:
    if not settings.admin_api_key:
        raise HTTPException(status_code=503, detail="Admin API is not configured")
    if not x_admin_api_key or not hmac.compare_digest(x_admin_api_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid admin API key")
