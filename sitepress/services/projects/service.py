"""
Re-edit flow for already published projects:
request a confirmation code by email, then confirm it together with the new content,
which creates a kind=update operation directly in paid and enqueues it.
"""
import logging
import re
import uuid

from sqlalchemy.orm import Session

from sitepress.models.operation import KIND_UPDATE, STATUS_PAID, Operation
from sitepress.schemas.operations import ConfirmUpdateRequest
from sitepress.services.confirmation_codes.service import CodeCheck, ConfirmationCodeStore
from sitepress.services.generation.errors import OperationNotFoundError
from sitepress.services.notifications.service import NotificationService
from sitepress.services.operations.service import OperationService
from sitepress.workers.queue import WorkQueue

logger = logging.getLogger(__name__)

_LEADING_RELATIVE = re.compile(r"^(?:\./|\.\./)+")


class ConfirmationCodeError(Exception):
    def __init__(self, check: CodeCheck):
        super().__init__(f"confirmation code {check.value}")
        self.check = check


def normalize_image_paths(project_name: str, images: dict) -> dict:
    """
    Rewrite relative image references to /projects/{name}/images/<rest>.
    URLs, data URLs and project paths are kept (project paths get a leading slash).
    """
    normalized = {}
    for key, value in images.items():
        if not isinstance(value, str) or not value:
            normalized[key] = value
            continue
        lower = value.lower()
        if lower.startswith(("http://", "https://", "data:")) or value.startswith("/projects/"):
            normalized[key] = value
            continue
        if value.startswith("projects/"):
            normalized[key] = f"/{value}"
            continue
        cleaned = _LEADING_RELATIVE.sub("", value).lstrip("/")
        if cleaned.startswith("images/"):
            cleaned = cleaned[len("images/"):]
        normalized[key] = f"/projects/{project_name}/images/{cleaned}" if cleaned else value
    return normalized


class ProjectEditService:
    def __init__(
        self,
        db: Session,
        codes: ConfirmationCodeStore,
        notifier: NotificationService,
        queue: WorkQueue,
    ):
        self.operations = OperationService(db)
        self.codes = codes
        self.notifier = notifier
        self.queue = queue

    def _latest(self, project_name: str) -> Operation:
        operation = self.operations.latest_for_project(project_name)
        if operation is None:
            raise OperationNotFoundError(f"No project named '{project_name}'", {"project_name": project_name})
        return operation

    def request_code(self, project_name: str) -> None:
        """Issue a code and email it to the project's owner."""
        owner = self._latest(project_name)
        code = self.codes.issue(project_name)
        self.notifier.send_confirmation_code(owner.email, project_name, code)

    def confirm(self, project_name: str, payload: ConfirmUpdateRequest) -> Operation:
        check = self.codes.check(project_name, payload.code)
        if check != CodeCheck.VALID:
            logger.warning("confirmation_code_rejected", extra={"project_name": project_name, "reason": check.value})
            raise ConfirmationCodeError(check)
        latest = self._latest(project_name)

        operation = self.operations.create(
            email=latest.email,
            project_name=project_name,
            template_id=payload.sourceTemplateId or latest.template_id,
            status=STATUS_PAID,
            kind=KIND_UPDATE,
            operation_id=str(uuid.uuid4()),
            images=normalize_image_paths(project_name, payload.images),
            langs=payload.langs,
            text_colors=payload.textColors,
            section_backgrounds=payload.sectionBackgrounds,
            image_sizes=payload.imageSizes,
            image_z_indexes=payload.imageZIndexes,
        )
        self.codes.consume(project_name)
        self.queue.enqueue(operation.operation_id, source="confirmation")
        return operation
