"""
Celery task: consume generation messages and run the orchestrator for each.

Producers: payment webhook, re-edit confirmation, admin. A message whose run raises
(store or broker unavailable) is re-enqueued alone with growing countdown; after
queue_max_receive_count deliveries it is dead-lettered.
"""
import logging

from sitepress.core.celery_app import celery_app
from sitepress.db.session import SessionLocal
from sitepress.orchestrator.factory import build_runner
from sitepress.orchestrator.runner import RunResult
from sitepress.workers.queue import WorkQueue, consume_batch

logger = logging.getLogger(__name__)


def run_orchestrator(operation_id: str) -> RunResult:
    db = SessionLocal()
    try:
        return build_runner(db).run(operation_id)
    finally:
        db.close()


@celery_app.task(
    name="sitepress.workers.tasks.generate_website.generate_website_batch",
    acks_late=True,
)
def generate_website_batch(messages: list[dict], delivery: int = 1) -> dict:
    """Process a batch of {operationId, timestamp} messages; only failures are redelivered."""
    failed_ids = set(consume_batch(messages, run_orchestrator))
    failed = [m for m in messages if isinstance(m, dict) and m.get("operationId") in failed_ids]
    if failed:
        WorkQueue().redeliver(failed, delivery)
    logger.info(
        "generation_batch_done",
        extra={"attempt": delivery, "status": "partial" if failed else "ok", "key": ",".join(sorted(failed_ids))},
    )
    return {"ok": not failed, "processed": len(messages), "failed": sorted(failed_ids)}
