"""
Work queue: generation messages {operationId, timestamp} carried by Celery.

Producer: WorkQueue.enqueue. Consumer: consume_batch, which handles each message on its own
and reports only the failed ones so a single bad message never redelivers the whole batch.
"""
import logging
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from sitepress.core.celery_app import celery_app
from sitepress.core.config import settings
from sitepress.schemas.operations import GenerationMessage
from sitepress.utils.metrics import operations_enqueued_total, queue_dead_letters_total

logger = logging.getLogger(__name__)

GENERATE_TASK = "sitepress.workers.tasks.generate_website.generate_website_batch"


def redelivery_countdown(delivery: int) -> int:
    """Seconds before delivery n+1: base, 2*base, 4*base ..."""
    return settings.queue_retry_base_seconds * 2 ** (delivery - 1)


class WorkQueue:
    def __init__(self, celery=None) -> None:
        self.celery = celery or celery_app

    def enqueue(self, operation_id: str, *, source: str = "api") -> GenerationMessage:
        message = GenerationMessage(operationId=operation_id)
        self.send([message.model_dump()])
        operations_enqueued_total.labels(source=source).inc()
        logger.info("generation_enqueued", extra={"operation_id": operation_id, "reason": source})
        return message

    def send(self, messages: list[dict], delivery: int = 1, countdown: int | None = None) -> None:
        self.celery.send_task(
            GENERATE_TASK,
            args=[messages],
            kwargs={"delivery": delivery},
            queue=settings.generation_queue_name,
            countdown=countdown,
        )

    def redeliver(self, messages: list[dict], delivery: int) -> None:
        """Re-enqueue failed messages, or dead-letter them after the last allowed delivery."""
        if not messages:
            return
        if delivery >= settings.queue_max_receive_count:
            for message in messages:
                queue_dead_letters_total.inc()
                logger.error(
                    "generation_message_dead_lettered",
                    extra={"operation_id": message.get("operationId"), "attempt": delivery},
                )
            return
        countdown = redelivery_countdown(delivery)
        self.send(messages, delivery=delivery + 1, countdown=countdown)
        logger.warning(
            "generation_messages_redelivered",
            extra={"attempt": delivery + 1, "delay_seconds": countdown, "key": ",".join(m.get("operationId", "") for m in messages)},
        )


def consume_batch(messages: Iterable[Any], handler: Callable[[str], Any]) -> list[str]:
    """
    Run handler(operation_id) for every message. Returns the operation ids whose handler raised.
    Malformed messages cannot succeed on redelivery and are dropped.
    """
    failed: list[str] = []
    for raw in messages:
        try:
            message = GenerationMessage.model_validate(raw)
        except ValidationError:
            queue_dead_letters_total.inc()
            logger.error("generation_message_malformed", extra={"error": repr(raw)[:200]})
            continue
        try:
            handler(message.operationId)
        except Exception as e:
            logger.exception(
                "generation_message_failed",
                extra={"operation_id": message.operationId, "error": str(e)},
            )
            failed.append(message.operationId)
    return failed
