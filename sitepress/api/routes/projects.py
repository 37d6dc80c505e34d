"""
Re-edit flow for published projects: email a confirmation code, then confirm it with new content.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from sitepress.api.deps import get_code_store, get_notifier, get_work_queue
from sitepress.core.config import settings
from sitepress.db.session import get_db
from sitepress.schemas.operations import PROJECT_NAME_RE, ConfirmUpdateRequest
from sitepress.services.confirmation_codes.service import ConfirmationCodeStore
from sitepress.services.generation.errors import OperationNotFoundError
from sitepress.services.notifications.service import NotificationService
from sitepress.services.projects.service import ConfirmationCodeError, ProjectEditService
from sitepress.workers.queue import WorkQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


def _service(
    db: Session = Depends(get_db),
    codes: ConfirmationCodeStore = Depends(get_code_store),
    notifier: NotificationService = Depends(get_notifier),
    queue: WorkQueue = Depends(get_work_queue),
) -> ProjectEditService:
    return ProjectEditService(db, codes, notifier, queue)


def _check_name(project_name: str) -> None:
    if not PROJECT_NAME_RE.match(project_name):
        raise HTTPException(status_code=400, detail="Invalid project name")


@router.post("/{project_name}/confirmation-code")
def request_confirmation_code(project_name: str, service: ProjectEditService = Depends(_service)) -> dict:
    _check_name(project_name)
    try:
        service.request_code(project_name)
    except OperationNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    except Exception as e:
        logger.exception("confirmation_code_send_failed", extra={"project_name": project_name, "error": str(e)})
        raise HTTPException(status_code=502, detail="Could not send confirmation code")
    return {"sent": True, "expiresIn": settings.confirmation_code_ttl}


@router.post("/{project_name}/confirm")
def confirm_update(
    project_name: str,
    payload: ConfirmUpdateRequest,
    service: ProjectEditService = Depends(_service),
) -> dict:
    _check_name(project_name)
    try:
        operation = service.confirm(project_name, payload)
    except ConfirmationCodeError as e:
        raise HTTPException(status_code=400, detail=f"Confirmation code {e.check.value}")
    except OperationNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"valid": True, "operationId": operation.operation_id}
