"""
Orchestrator state machine: tagged state, events, effects and a pure transition function.

    GET_METADATA -> VALIDATE -> CLAIM -> INVOKE_GENERATION -> UPDATE_COMPLETED -> SUCCESS
                                  |            |   ^
                                  v            v   |
                               SKIPPED       BACKOFF
                                               |
                           (not retryable / retries exhausted / timeout)
                                               v
                                         UPDATE_FAILED -> FAILURE

transition() never performs I/O; OrchestratorRunner interprets the returned effects and
feeds the resulting events back in.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Union


class StateName(str, Enum):
    GET_METADATA = "GET_METADATA"
    VALIDATE = "VALIDATE"
    CLAIM = "CLAIM"
    INVOKE_GENERATION = "INVOKE_GENERATION"
    BACKOFF = "BACKOFF"
    UPDATE_COMPLETED = "UPDATE_COMPLETED"
    UPDATE_FAILED = "UPDATE_FAILED"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"


TERMINAL_STATES = frozenset({StateName.SUCCESS, StateName.FAILURE, StateName.SKIPPED})

# States in which a deadline hit is turned into a failed status write
_TIMEOUT_FAILS = frozenset({
    StateName.VALIDATE,
    StateName.CLAIM,
    StateName.INVOKE_GENERATION,
    StateName.BACKOFF,
})

TIMEOUT_REASON = "timeout"


@dataclass(frozen=True)
class State:
    name: StateName
    operation_id: str
    attempt: int = 0  # generation attempts started
    record: Any = None  # raw operation fields from the store
    snapshot: Any = None  # validated OperationSnapshot
    reason: str | None = None  # failure reason once known
    failure_type: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.name in TERMINAL_STATES


def initial_state(operation_id: str) -> State:
    return State(name=StateName.GET_METADATA, operation_id=operation_id)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class MetadataLoaded:
    record: Any


@dataclass(frozen=True)
class MetadataMissing:
    reason: str = "operation not found"


@dataclass(frozen=True)
class ValidationPassed:
    snapshot: Any


@dataclass(frozen=True)
class ValidationFailed:
    reason: str


@dataclass(frozen=True)
class Claimed:
    pass


@dataclass(frozen=True)
class ClaimRejected:
    pass


@dataclass(frozen=True)
class GenerationSucceeded:
    result: Any = None


@dataclass(frozen=True)
class GenerationFailed:
    error: str
    retryable: bool
    failure_type: str | None = None


@dataclass(frozen=True)
class BackoffElapsed:
    pass


@dataclass(frozen=True)
class StatusWritten:
    pass


@dataclass(frozen=True)
class TimedOut:
    pass


Event = Union[
    Started, MetadataLoaded, MetadataMissing, ValidationPassed, ValidationFailed,
    Claimed, ClaimRejected, GenerationSucceeded, GenerationFailed, BackoffElapsed,
    StatusWritten, TimedOut,
]


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class FetchMetadata:
    pass


@dataclass(frozen=True)
class ValidateMetadata:
    pass


@dataclass(frozen=True)
class ClaimOperation:
    pass


@dataclass(frozen=True)
class InvokeGeneration:
    attempt: int


@dataclass(frozen=True)
class Sleep:
    seconds: float


@dataclass(frozen=True)
class WriteStatus:
    status: str  # "completed" | "failed"
    reason: str | None = None


@dataclass(frozen=True)
class Notify:
    pass


Effect = Union[FetchMetadata, ValidateMetadata, ClaimOperation, InvokeGeneration, Sleep, WriteStatus, Notify]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_seconds: float = 2.0
    backoff_rate: float = 2.0

    def delay(self, failed_attempt: int) -> float:
        """Delay after the n-th failed attempt: base * rate**(n-1) -> 2, 4, 8."""
        return self.base_seconds * self.backoff_rate ** (failed_attempt - 1)

    def allows_retry(self, failed_attempt: int) -> bool:
        return failed_attempt <= self.max_retries


class InvalidTransition(ValueError):
    def __init__(self, state: State, event: Any):
        super().__init__(f"No transition from {state.name.value} on {type(event).__name__}")
        self.state = state
        self.event = event


def _fail(state: State, reason: str, failure_type: str | None) -> tuple[State, list]:
    return (
        replace(state, name=StateName.UPDATE_FAILED, reason=reason, failure_type=failure_type),
        [WriteStatus("failed", reason)],
    )


def transition(state: State, event: Any, policy: RetryPolicy | None = None) -> tuple[State, list]:
    """Pure: (state, event) -> (next state, effects to perform)."""
    policy = policy or RetryPolicy()
    name = state.name

    if state.is_terminal:
        raise InvalidTransition(state, event)

    if isinstance(event, TimedOut):
        if name in _TIMEOUT_FAILS:
            return _fail(state, TIMEOUT_REASON, "timeout")
        if name == StateName.GET_METADATA:
            return replace(state, name=StateName.FAILURE, reason=TIMEOUT_REASON), []
        raise InvalidTransition(state, event)

    if name == StateName.GET_METADATA:
        if isinstance(event, Started):
            return state, [FetchMetadata()]
        if isinstance(event, MetadataLoaded):
            return replace(state, name=StateName.VALIDATE, record=event.record), [ValidateMetadata()]
        if isinstance(event, MetadataMissing):
            # Nothing to write a status onto
            return replace(state, name=StateName.FAILURE, reason=event.reason, failure_type="not_found"), []

    elif name == StateName.VALIDATE:
        if isinstance(event, ValidationPassed):
            return replace(state, name=StateName.CLAIM, snapshot=event.snapshot), [ClaimOperation()]
        if isinstance(event, ValidationFailed):
            return _fail(state, event.reason, "validation")

    elif name == StateName.CLAIM:
        if isinstance(event, Claimed):
            return replace(state, name=StateName.INVOKE_GENERATION, attempt=1), [InvokeGeneration(1)]
        if isinstance(event, ClaimRejected):
            return replace(state, name=StateName.SKIPPED), []

    elif name == StateName.INVOKE_GENERATION:
        if isinstance(event, GenerationSucceeded):
            return replace(state, name=StateName.UPDATE_COMPLETED, reason=None, failure_type=None), [WriteStatus("completed")]
        if isinstance(event, GenerationFailed):
            if event.retryable and policy.allows_retry(state.attempt):
                return (
                    replace(state, name=StateName.BACKOFF, reason=event.error, failure_type=event.failure_type),
                    [Sleep(policy.delay(state.attempt))],
                )
            return _fail(state, event.error, event.failure_type)

    elif name == StateName.BACKOFF:
        if isinstance(event, BackoffElapsed):
            attempt = state.attempt + 1
            return replace(state, name=StateName.INVOKE_GENERATION, attempt=attempt), [InvokeGeneration(attempt)]

    elif name == StateName.UPDATE_COMPLETED:
        if isinstance(event, StatusWritten):
            return replace(state, name=StateName.SUCCESS, reason=None, failure_type=None), [Notify()]

    elif name == StateName.UPDATE_FAILED:
        if isinstance(event, StatusWritten):
            return replace(state, name=StateName.FAILURE), []

    raise InvalidTransition(state, event)
