"""Tests for the work queue: enqueue, partial batch failure, redelivery and dead letters."""
from unittest.mock import MagicMock, patch

from sitepress.workers.queue import GENERATE_TASK, WorkQueue, consume_batch, redelivery_countdown
from sitepress.workers.tasks.generate_website import generate_website_batch


def _message(operation_id):
    return {"operationId": operation_id, "timestamp": "2026-01-01T00:00:00+00:00"}


def test_enqueue_sends_single_message_batch():
    celery = MagicMock()
    message = WorkQueue(celery).enqueue("op-1", source="payment_webhook")

    assert message.operationId == "op-1"
    name = celery.send_task.call_args.args[0]
    kwargs = celery.send_task.call_args.kwargs
    assert name == GENERATE_TASK
    assert kwargs["args"][0][0]["operationId"] == "op-1"
    assert "timestamp" in kwargs["args"][0][0]
    assert kwargs["kwargs"] == {"delivery": 1}
    assert kwargs["queue"] == "generation"


def test_consume_batch_reports_only_failures():
    seen = []

    def handler(operation_id):
        seen.append(operation_id)
        if operation_id == "op-2":
            raise RuntimeError("store unavailable")

    failed = consume_batch([_message("op-1"), _message("op-2"), _message("op-3")], handler)

    assert failed == ["op-2"]
    assert seen == ["op-1", "op-2", "op-3"]


def test_malformed_message_is_dropped():
    handler = MagicMock()
    failed = consume_batch([{"unexpected": True}, _message("op-1")], handler)
    assert failed == []
    handler.assert_called_once_with("op-1")


def test_redelivery_countdown_doubles():
    assert [redelivery_countdown(n) for n in (1, 2, 3)] == [30, 60, 120]


def test_redeliver_schedules_next_delivery():
    celery = MagicMock()
    WorkQueue(celery).redeliver([_message("op-2")], delivery=1)
    kwargs = celery.send_task.call_args.kwargs
    assert kwargs["kwargs"] == {"delivery": 2}
    assert kwargs["countdown"] == 30
    assert kwargs["args"] == [[_message("op-2")]]


def test_redeliver_dead_letters_after_max_receives():
    celery = MagicMock()
    WorkQueue(celery).redeliver([_message("op-2")], delivery=3)
    celery.send_task.assert_not_called()


def test_batch_task_redelivers_failed_messages_only():
    messages = [_message("op-1"), _message("op-2")]

    def run(operation_id):
        if operation_id == "op-2":
            raise RuntimeError("boom")

    with patch("sitepress.workers.tasks.generate_website.run_orchestrator", side_effect=run), patch(
        "sitepress.workers.tasks.generate_website.WorkQueue"
    ) as queue_cls:
        result = generate_website_batch(messages, delivery=2)

    assert result == {"ok": False, "processed": 2, "failed": ["op-2"]}
    queue_cls.return_value.redeliver.assert_called_once_with([_message("op-2")], 2)
