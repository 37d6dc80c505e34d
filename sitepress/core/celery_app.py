"""
Celery application: broker and result backend from settings.
Generation messages go to the dedicated generation queue; beat purges abandoned operations.
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from sitepress.core.config import settings
from sitepress.core.logging import configure_logging

celery_app = Celery(
    "sitepress",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "sitepress.workers.tasks.generate_website",
        "sitepress.workers.tasks.purge_expired",
        "sitepress.workers.tasks.watchdog_processing",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    # Backstop for the orchestrator's own wall-clock deadline.
    task_soft_time_limit=settings.orchestrator_timeout_seconds + 30,
    task_time_limit=settings.orchestrator_timeout_seconds + 60,
    result_expires=86400,
    beat_schedule={
        "purge-expired-operations": {
            "task": "sitepress.workers.tasks.purge_expired.purge_expired_operations",
            "schedule": crontab(minute=0),
        },
        "fail-stuck-processing": {
            "task": "sitepress.workers.tasks.watchdog_processing.fail_stuck_processing",
            "schedule": crontab(minute="*/5"),
        },
    },
)

celery_app.conf.task_routes = {
    "sitepress.workers.tasks.generate_website.*": {"queue": settings.generation_queue_name},
}


@setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    configure_logging()
