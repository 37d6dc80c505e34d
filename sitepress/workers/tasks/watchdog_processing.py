"""
Celery beat task: fail operations stuck in 'processing' after their worker died.

A run holds the processing claim for at most orchestrator_timeout_seconds (Celery's
hard time_limit kills it shortly after). Anything older than that plus a margin has no
live owner, and its redelivered message can never claim it again.
"""
import logging
from datetime import datetime, timedelta, timezone

from sitepress.core.celery_app import celery_app
from sitepress.core.config import settings
from sitepress.db.session import SessionLocal
from sitepress.orchestrator.states import TIMEOUT_REASON
from sitepress.services.operations.service import OperationService
from sitepress.utils.metrics import operations_failed_total

logger = logging.getLogger(__name__)


def stuck_cutoff(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(
        seconds=settings.orchestrator_timeout_seconds + settings.processing_stuck_margin_seconds
    )


@celery_app.task(
    name="sitepress.workers.tasks.watchdog_processing.fail_stuck_processing",
    time_limit=60,
    soft_time_limit=55,
)
def fail_stuck_processing() -> dict:
    db = SessionLocal()
    try:
        failed_ids = OperationService(db).fail_stuck_processing(stuck_cutoff(), TIMEOUT_REASON)
        for operation_id in failed_ids:
            operations_failed_total.labels(failure_type="timeout").inc()
            logger.warning(
                "watchdog_failed_stuck_processing",
                extra={"operation_id": operation_id, "reason": TIMEOUT_REASON},
            )
        return {"ok": True, "failed_count": len(failed_ids)}
    except Exception:
        logger.exception("watchdog_processing_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()
