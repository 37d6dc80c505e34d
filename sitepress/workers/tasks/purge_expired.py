"""
Celery beat task: delete pending operations whose expires_at has passed.
"""
import logging

from sitepress.core.celery_app import celery_app
from sitepress.db.session import SessionLocal
from sitepress.services.operations.service import OperationService

logger = logging.getLogger(__name__)


@celery_app.task(
    name="sitepress.workers.tasks.purge_expired.purge_expired_operations",
    time_limit=60,
    soft_time_limit=55,
)
def purge_expired_operations() -> dict:
    db = SessionLocal()
    try:
        purged = OperationService(db).purge_expired()
        if purged:
            logger.info("expired_operations_purged", extra={"status": "pending", "key": str(purged)})
        return {"ok": True, "purged": purged}
    finally:
        db.close()
