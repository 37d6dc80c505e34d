"""
Wire an OrchestratorRunner to the production collaborators for one DB session.
"""
from sqlalchemy.orm import Session

from sitepress.orchestrator.runner import OrchestratorRunner
from sitepress.services.generation.pipeline import GenerationPipeline
from sitepress.services.idempotency import IdempotencyStore
from sitepress.services.notifications.service import NotificationService
from sitepress.services.operations.service import OperationService


def build_runner(db: Session) -> OrchestratorRunner:
    return OrchestratorRunner(
        operations=OperationService(db),
        pipeline=GenerationPipeline(),
        notifier=NotificationService(),
        idempotency=IdempotencyStore(),
    )
