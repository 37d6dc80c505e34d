"""
OperationService: the metadata store.

All non-terminal status transitions are compare-and-set (UPDATE ... WHERE status IN expected)
so two concurrent triggers cannot both win. Terminal writes from the orchestrator are unconditional
only once that run holds the processing claim; earlier failures go through fail_unclaimed.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from sitepress.core.config import settings
from sitepress.models.operation import (
    KIND_CREATE,
    STATUS_COMPLETED,
    STATUS_DEPLOYED,
    STATUS_FAILED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_RANK,
    Operation,
)
from sitepress.schemas.operations import OperationSnapshot

logger = logging.getLogger(__name__)

CONTENT_FIELDS = (
    "images",
    "langs",
    "text_colors",
    "section_backgrounds",
    "image_sizes",
    "image_z_indexes",
)


def is_forward_transition(current: str, target: str) -> bool:
    """True if moving current -> target never regresses status."""
    if current == target:
        return False
    if current in (STATUS_FAILED, STATUS_DEPLOYED):
        return False
    if target == STATUS_FAILED:
        return True
    return STATUS_RANK[target] > STATUS_RANK[current]


class OperationService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(
        self,
        email: str,
        project_name: str,
        template_id: str,
        *,
        status: str = STATUS_PENDING,
        kind: str = KIND_CREATE,
        payment_session_id: str | None = None,
        operation_id: str | None = None,
        **content: Any,
    ) -> Operation:
        unknown = set(content) - set(CONTENT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown content fields: {sorted(unknown)}")
        now = datetime.now(timezone.utc)
        op_kwargs: dict = {
            "status": status,
            "kind": kind,
            "email": email,
            "project_name": project_name,
            "template_id": template_id,
            "payment_session_id": payment_session_id,
            "expires_at": now + timedelta(days=settings.operation_ttl_days),
        }
        for field in CONTENT_FIELDS:
            op_kwargs[field] = dict(content.get(field) or {})
        if status == STATUS_PAID:
            op_kwargs["paid_at"] = now
        if operation_id is not None:
            op_kwargs["operation_id"] = operation_id
        operation = Operation(**op_kwargs)
        self.db.add(operation)
        self.db.commit()
        self.db.refresh(operation)
        logger.info(
            "operation_created",
            extra={"operation_id": operation.operation_id, "project_name": project_name, "status": status},
        )
        return operation

    def get(self, operation_id: str) -> Operation | None:
        return self.db.query(Operation).filter(Operation.operation_id == operation_id).one_or_none()

    def find_by_payment_session(self, payment_session_id: str) -> Operation | None:
        return (
            self.db.query(Operation)
            .filter(Operation.payment_session_id == payment_session_id)
            .one_or_none()
        )

    def latest_for_project(self, project_name: str, status: str | None = None) -> Operation | None:
        query = self.db.query(Operation).filter(Operation.project_name == project_name)
        if status is not None:
            query = query.filter(Operation.status == status)
        return query.order_by(Operation.created_at.desc()).first()

    def list_by_status(self, status: str, limit: int = 100) -> list[Operation]:
        return (
            self.db.query(Operation)
            .filter(Operation.status == status)
            .order_by(Operation.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_by_email(self, email: str, limit: int = 100) -> list[Operation]:
        return (
            self.db.query(Operation)
            .filter(Operation.email == email)
            .order_by(Operation.created_at.desc())
            .limit(limit)
            .all()
        )

    def snapshot(self, operation: Operation) -> OperationSnapshot:
        """Frozen copy of the content; raises pydantic.ValidationError on malformed records."""
        return OperationSnapshot(
            operation_id=operation.operation_id,
            status=operation.status,
            kind=operation.kind,
            email=operation.email,
            project_name=operation.project_name,
            template_id=operation.template_id,
            images=operation.images or {},
            langs=operation.langs or {},
            text_colors=operation.text_colors or {},
            section_backgrounds=operation.section_backgrounds or {},
            image_sizes=operation.image_sizes or {},
            image_z_indexes=operation.image_z_indexes or {},
        )

    # ------------------------------------------------------------------
    # Content edits (only while pending)
    # ------------------------------------------------------------------

    def update_content(self, operation_id: str, **content: Any) -> bool:
        """Replace content maps; refused once the operation has left pending."""
        values = {k: dict(v or {}) for k, v in content.items() if k in CONTENT_FIELDS}
        if not values:
            return False
        values["updated_at"] = datetime.now(timezone.utc)
        return self._conditional_update(operation_id, (STATUS_PENDING,), values)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        operation_id: str,
        expected: Iterable[str],
        target: str,
        **fields: Any,
    ) -> bool:
        """
        Compare-and-set status: only rows currently in one of `expected` move to `target`.
        Returns True if this call performed the transition.
        """
        expected = tuple(expected)
        for current in expected:
            if not is_forward_transition(current, target):
                raise ValueError(f"Illegal transition {current} -> {target}")
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {"status": target, "updated_at": now}
        if target == STATUS_PAID:
            values["paid_at"] = now
        elif target == STATUS_DEPLOYED:
            values["deployed_at"] = now
        values.update(fields)
        changed = self._conditional_update(operation_id, expected, values)
        logger.info(
            "operation_transition" if changed else "operation_transition_rejected",
            extra={"operation_id": operation_id, "status": target, "expected": list(expected)},
        )
        return changed

    def mark_paid(self, operation_id: str) -> bool:
        return self.transition(operation_id, (STATUS_PENDING,), STATUS_PAID)

    def claim_for_processing(self, operation_id: str) -> bool:
        return self.transition(operation_id, (STATUS_PAID,), STATUS_PROCESSING)

    def mark_payment_failed(self, operation_id: str, reason: str) -> bool:
        return self.transition(
            operation_id, (STATUS_PENDING, STATUS_PAID), STATUS_FAILED, failure_reason=reason
        )

    def fail_unclaimed(self, operation_id: str, reason: str) -> bool:
        """Fail an operation this caller never claimed; never touches processing or terminal rows."""
        return self.transition(
            operation_id, (STATUS_PENDING, STATUS_PAID), STATUS_FAILED, failure_reason=reason[:2000]
        )

    def mark_deployed(self, operation_id: str, commit_sha: str | None) -> bool:
        return self.transition(
            operation_id, (STATUS_COMPLETED,), STATUS_DEPLOYED, deployment_commit_sha=commit_sha
        )

    def set_completed(self, operation_id: str) -> None:
        """Terminal write; unconditional (single orchestrator run per operation)."""
        now = datetime.now(timezone.utc)
        self._unconditional_update(
            operation_id,
            {"status": STATUS_COMPLETED, "completed_at": now, "updated_at": now, "failure_reason": None},
        )

    def set_failed(self, operation_id: str, reason: str) -> None:
        """Terminal write; unconditional (single orchestrator run per operation)."""
        self._unconditional_update(
            operation_id,
            {"status": STATUS_FAILED, "failure_reason": reason[:2000], "updated_at": datetime.now(timezone.utc)},
        )

    # ------------------------------------------------------------------
    # Expiry and stuck runs
    # ------------------------------------------------------------------

    def fail_stuck_processing(self, cutoff: datetime, reason: str) -> list[str]:
        """Fail operations claimed before cutoff whose run never finished. Returns the ids failed."""
        stuck_ids = [
            row.operation_id
            for row in self.db.query(Operation.operation_id)
            .filter(Operation.status == STATUS_PROCESSING, Operation.updated_at < cutoff)
            .all()
        ]
        return [
            operation_id
            for operation_id in stuck_ids
            if self.transition(operation_id, (STATUS_PROCESSING,), STATUS_FAILED, failure_reason=reason)
        ]

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete abandoned pending operations whose expires_at has passed."""
        now = now or datetime.now(timezone.utc)
        result = self.db.execute(
            delete(Operation)
            .where(Operation.status == STATUS_PENDING, Operation.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    # ------------------------------------------------------------------

    def _conditional_update(self, operation_id: str, expected: tuple[str, ...], values: dict) -> bool:
        result = self.db.execute(
            update(Operation)
            .where(Operation.operation_id == operation_id, Operation.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return (result.rowcount or 0) == 1

    def _unconditional_update(self, operation_id: str, values: dict) -> None:
        self.db.execute(
            update(Operation)
            .where(Operation.operation_id == operation_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info(
            "operation_terminal_status",
            extra={"operation_id": operation_id, "status": values["status"]},
        )
