"""
OrchestratorRunner: drives states.transition against the real collaborators.

Enforces the wall-clock deadline before starting each unit of work; a generation that is
already running is allowed to finish (Celery's soft_time_limit bounds it).
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from sitepress.core.config import settings
from sitepress.models.operation import KIND_CREATE, STATUS_COMPLETED
from sitepress.schemas.operations import OperationSnapshot
from sitepress.services.generation.failure_types import classify_failure
from sitepress.services.idempotency import IdempotencyStore, derive_key
from sitepress.services.operations.service import CONTENT_FIELDS, OperationService
from sitepress.utils.metrics import (
    operations_completed_total,
    operations_failed_total,
    orchestrator_duration_seconds,
)
from sitepress.orchestrator.states import (
    BackoffElapsed,
    ClaimOperation,
    ClaimRejected,
    Claimed,
    FetchMetadata,
    GenerationFailed,
    GenerationSucceeded,
    InvokeGeneration,
    MetadataLoaded,
    MetadataMissing,
    Notify,
    RetryPolicy,
    Sleep,
    Started,
    State,
    StateName,
    StatusWritten,
    TimedOut,
    ValidateMetadata,
    ValidationFailed,
    ValidationPassed,
    WriteStatus,
    initial_state,
    transition,
)

logger = logging.getLogger(__name__)

_RECORD_FIELDS = ("operation_id", "status", "kind", "email", "project_name", "template_id") + CONTENT_FIELDS


@dataclass(frozen=True)
class RunResult:
    operation_id: str
    state: StateName
    attempts: int
    reason: str | None = None


def retry_policy_from_settings() -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.generation_max_retries,
        base_seconds=settings.generation_retry_base_seconds,
        backoff_rate=settings.generation_retry_backoff_rate,
    )


class OrchestratorRunner:
    def __init__(
        self,
        operations: OperationService,
        pipeline: Any,
        notifier: Any,
        idempotency: IdempotencyStore,
        *,
        policy: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.operations = operations
        self.pipeline = pipeline
        self.notifier = notifier
        self.idempotency = idempotency
        self.policy = policy or retry_policy_from_settings()
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.orchestrator_timeout_seconds
        self.sleep = sleep
        self.clock = clock
        self._deadline = 0.0
        self._claimed = False

    def run(self, operation_id: str) -> RunResult:
        started = self.clock()
        self._deadline = started + self.timeout_seconds
        self._claimed = False
        state = initial_state(operation_id)
        event: Any = Started()

        while True:
            state, effects = transition(state, event, self.policy)
            event = None
            for effect in effects:
                event = self._perform(state, effect)
            if state.is_terminal:
                break

        orchestrator_duration_seconds.observe(self.clock() - started)
        logger.info(
            "orchestrator_finished",
            extra={
                "operation_id": operation_id,
                "status": state.name.value,
                "attempt": state.attempt,
                "reason": state.reason,
            },
        )
        return RunResult(operation_id=operation_id, state=state.name, attempts=state.attempt, reason=state.reason)

    # ------------------------------------------------------------------

    def _remaining(self) -> float:
        return self._deadline - self.clock()

    def _perform(self, state: State, effect: Any) -> Any:
        if isinstance(effect, (FetchMetadata, ValidateMetadata, ClaimOperation, InvokeGeneration)):
            if self._remaining() <= 0:
                logger.warning("orchestrator_timed_out", extra={"operation_id": state.operation_id})
                return TimedOut()

        if isinstance(effect, FetchMetadata):
            return self._fetch(state)
        if isinstance(effect, ValidateMetadata):
            return self._validate(state)
        if isinstance(effect, ClaimOperation):
            if self.operations.claim_for_processing(state.operation_id):
                self._claimed = True
                logger.info("operation_claimed", extra={"operation_id": state.operation_id})
                return Claimed()
            logger.info("operation_claim_rejected", extra={"operation_id": state.operation_id})
            return ClaimRejected()
        if isinstance(effect, InvokeGeneration):
            return self._invoke(state, effect.attempt)
        if isinstance(effect, Sleep):
            remaining = self._remaining()
            if remaining <= effect.seconds:
                self.sleep(max(0.0, remaining))
                return TimedOut()
            self.sleep(effect.seconds)
            return BackoffElapsed()
        if isinstance(effect, WriteStatus):
            return self._write_status(state, effect)
        if isinstance(effect, Notify):
            self._notify(state)
            return None
        raise TypeError(f"Unknown effect {effect!r}")

    def _fetch(self, state: State) -> Any:
        operation = self.operations.get(state.operation_id)
        if operation is None:
            logger.warning("operation_not_found", extra={"operation_id": state.operation_id})
            return MetadataMissing()
        return MetadataLoaded({field: getattr(operation, field) for field in _RECORD_FIELDS})

    def _validate(self, state: State) -> Any:
        try:
            snapshot = OperationSnapshot.model_validate(
                {k: ({} if v is None and k in CONTENT_FIELDS else v) for k, v in state.record.items()}
            )
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            reason = f"Invalid operation metadata: {fields}"
            logger.warning("operation_validation_failed", extra={"operation_id": state.operation_id, "reason": reason})
            return ValidationFailed(reason)
        return ValidationPassed(snapshot)

    def _invoke(self, state: State, attempt: int) -> Any:
        extra = {
            "operation_id": state.operation_id,
            "attempt": attempt,
            "max_attempts": self.policy.max_retries + 1,
        }
        logger.info("generation_attempt", extra=extra)
        try:
            result = self.pipeline.run(state.snapshot)
        except Exception as e:
            failure_type, retry_allowed = classify_failure(e)
            logger.warning(
                "generation_failed",
                extra={**extra, "error": str(e), "failure_type": failure_type.value},
            )
            return GenerationFailed(error=str(e) or type(e).__name__, retryable=retry_allowed, failure_type=failure_type.value)
        return GenerationSucceeded(result)

    def _write_status(self, state: State, effect: WriteStatus) -> Any:
        if effect.status == STATUS_COMPLETED:
            self.operations.set_completed(state.operation_id)
            operations_completed_total.inc()
        else:
            reason = effect.reason or "unknown error"
            if self._claimed:
                self.operations.set_failed(state.operation_id, reason)
            elif not self.operations.fail_unclaimed(state.operation_id, reason):
                # Owned by another run or already terminal
                logger.info("operation_failure_not_written", extra={"operation_id": state.operation_id, "reason": reason})
                return StatusWritten()
            operations_failed_total.labels(failure_type=state.failure_type or "unknown").inc()
        return StatusWritten()

    def _notify(self, state: State) -> None:
        snapshot = state.snapshot
        if snapshot is None or snapshot.kind != KIND_CREATE:
            return
        key = derive_key("notification", "first-publish", snapshot.project_name)
        try:
            executed, _ = self.idempotency.run_once(
                key, lambda: self.notifier.send_site_published(snapshot.email, snapshot.project_name)
            )
        except Exception:
            # Status is already completed; the email is not retried
            logger.exception("notification_failed", extra={"operation_id": state.operation_id})
            return
        if not executed:
            logger.info("notification_already_sent", extra={"operation_id": state.operation_id})
