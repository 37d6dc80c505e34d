"""
Admin API for operations (Trigger B): status read and synchronous generation.
All endpoints require the X-Admin-Api-Key header.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from sitepress.api.deps import get_runner, require_admin_key
from sitepress.db.session import get_db
from sitepress.orchestrator.runner import OrchestratorRunner
from sitepress.schemas.operations import OperationOut
from sitepress.services.operations.service import OperationService
from sitepress.utils.metrics import operations_enqueued_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operations", tags=["operations"], dependencies=[Depends(require_admin_key)])


def _to_out(operation) -> OperationOut:
    return OperationOut(
        operation_id=operation.operation_id,
        status=operation.status,
        kind=operation.kind,
        project_name=operation.project_name,
        template_id=operation.template_id,
        failure_reason=operation.failure_reason,
        created_at=operation.created_at,
        updated_at=operation.updated_at,
        paid_at=operation.paid_at,
        completed_at=operation.completed_at,
        deployed_at=operation.deployed_at,
    )


@router.get("/{operation_id}", response_model=OperationOut)
def get_operation(operation_id: str, db: Session = Depends(get_db)):
    operation = OperationService(db).get(operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return _to_out(operation)


@router.post("/{operation_id}/generate")
def generate_operation(
    operation_id: str,
    db: Session = Depends(get_db),
    runner: OrchestratorRunner = Depends(get_runner),
) -> dict:
    """Run the orchestrator now. Only a paid operation is claimed; anything else is skipped."""
    operations = OperationService(db)
    if operations.get(operation_id) is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    operations_enqueued_total.labels(source="admin").inc()
    result = runner.run(operation_id)
    db.expire_all()
    operation = operations.get(operation_id)
    return {
        "operationId": operation_id,
        "state": result.state.value,
        "attempts": result.attempts,
        "reason": result.reason,
        "status": operation.status if operation else None,
    }
