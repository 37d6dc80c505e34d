"""Tests for OrchestratorRunner against an in-memory store, fake Redis and a mocked pipeline."""
from unittest.mock import MagicMock

import pytest

from sitepress.models.operation import KIND_UPDATE, STATUS_DEPLOYED, STATUS_PAID, STATUS_PENDING, STATUS_PROCESSING
from sitepress.orchestrator.runner import OrchestratorRunner
from sitepress.orchestrator.states import RetryPolicy, StateName
from sitepress.services.generation.errors import ImageTooLargeError, TransientInfrastructureError
from sitepress.services.idempotency import IdempotencyStore, derive_key
from sitepress.services.operations.service import OperationService
from sitepress.services.publishing.service import PublishResult

PUBLISHED = PublishResult(created=True, commit_sha="abc123", url="https://bakery.e-info.click")


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def operations(db):
    return OperationService(db)


@pytest.fixture
def idempotency(redis_client):
    return IdempotencyStore(client=redis_client)


def _runner(operations, idempotency, pipeline, notifier=None, clock=None, timeout=600):
    clock = clock or FakeClock()
    return OrchestratorRunner(
        operations,
        pipeline,
        notifier or MagicMock(),
        idempotency,
        policy=RetryPolicy(max_retries=3, base_seconds=2.0, backoff_rate=2.0),
        timeout_seconds=timeout,
        sleep=clock.sleep,
        clock=clock,
    )


def _paid_operation(operations, **kwargs):
    params = {
        "email": "owner@example.com",
        "project_name": "bakery",
        "template_id": "restaurant",
        "status": STATUS_PAID,
        "langs": {"headline": "Fresh bread"},
    }
    params.update(kwargs)
    return operations.create(**params)


def test_two_transient_failures_then_success(operations, idempotency):
    op = _paid_operation(operations)
    pipeline = MagicMock()
    pipeline.run.side_effect = [
        TransientInfrastructureError("S3 throttled"),
        TransientInfrastructureError("S3 throttled"),
        PUBLISHED,
    ]
    notifier = MagicMock()
    clock = FakeClock()

    result = _runner(operations, idempotency, pipeline, notifier, clock).run(op.operation_id)

    assert result.state == StateName.SUCCESS
    assert result.attempts == 3
    assert result.reason is None
    assert pipeline.run.call_count == 3
    assert clock.sleeps == [2.0, 4.0]
    stored = operations.get(op.operation_id)
    assert stored.status == "completed"
    assert stored.completed_at is not None
    assert stored.failure_reason is None
    notifier.send_site_published.assert_called_once_with("owner@example.com", "bakery")


def test_snapshot_passed_to_pipeline(operations, idempotency):
    op = _paid_operation(operations, images={"hero": "https://cdn/x.png"})
    pipeline = MagicMock()
    pipeline.run.return_value = PUBLISHED

    _runner(operations, idempotency, pipeline).run(op.operation_id)

    snapshot = pipeline.run.call_args.args[0]
    assert snapshot.operation_id == op.operation_id
    assert snapshot.langs == {"headline": "Fresh bread"}
    assert snapshot.images == {"hero": "https://cdn/x.png"}


def test_non_retryable_error_fails_immediately(operations, idempotency):
    op = _paid_operation(operations)
    pipeline = MagicMock()
    pipeline.run.side_effect = ImageTooLargeError("hero", 5_000_000, 1_048_576)
    notifier = MagicMock()

    result = _runner(operations, idempotency, pipeline, notifier).run(op.operation_id)

    assert result.state == StateName.FAILURE
    assert pipeline.run.call_count == 1
    stored = operations.get(op.operation_id)
    assert stored.status == "failed"
    assert "hero" in stored.failure_reason
    notifier.send_site_published.assert_not_called()


def test_retries_exhausted_marks_failed(operations, idempotency):
    op = _paid_operation(operations)
    pipeline = MagicMock()
    pipeline.run.side_effect = TransientInfrastructureError("GitHub unavailable")

    result = _runner(operations, idempotency, pipeline).run(op.operation_id)

    assert result.state == StateName.FAILURE
    assert pipeline.run.call_count == 4
    assert operations.get(op.operation_id).failure_reason == "GitHub unavailable"


def test_unpaid_operation_is_skipped(operations, idempotency):
    op = _paid_operation(operations, status=STATUS_PENDING)
    pipeline = MagicMock()

    result = _runner(operations, idempotency, pipeline).run(op.operation_id)

    assert result.state == StateName.SKIPPED
    pipeline.run.assert_not_called()
    assert operations.get(op.operation_id).status == STATUS_PENDING


def test_second_run_cannot_claim_again(operations, idempotency):
    op = _paid_operation(operations)
    pipeline = MagicMock()
    pipeline.run.return_value = PUBLISHED

    first = _runner(operations, idempotency, pipeline).run(op.operation_id)
    second = _runner(operations, idempotency, pipeline).run(op.operation_id)

    assert first.state == StateName.SUCCESS
    assert second.state == StateName.SKIPPED
    assert pipeline.run.call_count == 1


def test_missing_operation(operations, idempotency):
    pipeline = MagicMock()
    result = _runner(operations, idempotency, pipeline).run("does-not-exist")
    assert result.state == StateName.FAILURE
    pipeline.run.assert_not_called()


def test_invalid_metadata_fails_validation(operations, idempotency):
    op = _paid_operation(operations, email="not-an-email")
    pipeline = MagicMock()

    result = _runner(operations, idempotency, pipeline).run(op.operation_id)

    assert result.state == StateName.FAILURE
    pipeline.run.assert_not_called()
    stored = operations.get(op.operation_id)
    assert stored.status == "failed"
    assert "email" in stored.failure_reason


def test_deadline_turns_backoff_into_timeout(operations, idempotency):
    op = _paid_operation(operations)
    pipeline = MagicMock()
    pipeline.run.side_effect = TransientInfrastructureError("slow")
    clock = FakeClock()

    result = _runner(operations, idempotency, pipeline, clock=clock, timeout=5).run(op.operation_id)

    assert result.state == StateName.FAILURE
    assert pipeline.run.call_count == 2
    assert clock.sleeps == [2.0, 3.0]
    assert operations.get(op.operation_id).failure_reason == "timeout"


def test_notification_sent_once_per_project(operations, idempotency):
    notifier = MagicMock()
    pipeline = MagicMock()
    pipeline.run.return_value = PUBLISHED
    idempotency.check_and_set(derive_key("notification", "first-publish", "bakery"))
    op = _paid_operation(operations)

    result = _runner(operations, idempotency, pipeline, notifier).run(op.operation_id)

    assert result.state == StateName.SUCCESS
    notifier.send_site_published.assert_not_called()


def test_update_operations_do_not_notify(operations, idempotency):
    notifier = MagicMock()
    pipeline = MagicMock()
    pipeline.run.return_value = PUBLISHED
    op = _paid_operation(operations, kind=KIND_UPDATE)

    _runner(operations, idempotency, pipeline, notifier).run(op.operation_id)

    notifier.send_site_published.assert_not_called()


def test_notification_failure_does_not_fail_operation(operations, idempotency):
    notifier = MagicMock()
    notifier.send_site_published.side_effect = RuntimeError("SES down")
    pipeline = MagicMock()
    pipeline.run.return_value = PUBLISHED
    op = _paid_operation(operations)

    result = _runner(operations, idempotency, pipeline, notifier).run(op.operation_id)

    assert result.state == StateName.SUCCESS
    assert operations.get(op.operation_id).status == "completed"


def test_invalid_metadata_never_regresses_a_deployed_operation(operations, idempotency):
    op = _paid_operation(operations, status=STATUS_DEPLOYED, email="legacy-owner")
    pipeline = MagicMock()

    result = _runner(operations, idempotency, pipeline).run(op.operation_id)

    assert result.state == StateName.FAILURE
    pipeline.run.assert_not_called()
    stored = operations.get(op.operation_id)
    assert stored.status == STATUS_DEPLOYED
    assert stored.failure_reason is None


def test_invalid_metadata_leaves_another_runs_claim_alone(operations, idempotency):
    op = _paid_operation(operations, email="legacy-owner")
    operations.claim_for_processing(op.operation_id)

    _runner(operations, idempotency, MagicMock()).run(op.operation_id)

    assert operations.get(op.operation_id).status == STATUS_PROCESSING
