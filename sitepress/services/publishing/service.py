"""
Publisher: durable publish of a generated page.

Order: artifact repository (source of truth) -> object store mirror -> CDN invalidation.
A mirror failure propagates so the orchestrator retries the whole publish; recommitting the
same HTML is harmless. CDN invalidation is best-effort behind a circuit breaker.
"""
import logging
from dataclasses import dataclass

import pybreaker

from sitepress.core.config import settings
from sitepress.services.circuit_breaker import get_circuit_breaker
from sitepress.services.publishing.object_store import CdnInvalidator, ObjectStore
from sitepress.services.publishing.repository import ArtifactRepository
from sitepress.utils.metrics import cdn_invalidation_failures_total

logger = logging.getLogger(__name__)

OWNER_MARKER = ".owner-marker"


@dataclass(frozen=True)
class PublishResult:
    created: bool  # first publish of this project
    commit_sha: str
    url: str


def project_html_path(project_name: str) -> str:
    return f"projects/{project_name}/index.html"


def site_url(project_name: str) -> str:
    return f"https://{project_name}.{settings.site_domain}"


class Publisher:
    def __init__(
        self,
        repository: ArtifactRepository | None = None,
        object_store: ObjectStore | None = None,
        cdn: CdnInvalidator | None = None,
        cdn_breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.repository = repository or ArtifactRepository()
        self.object_store = object_store or ObjectStore()
        self.cdn = cdn or CdnInvalidator()
        self._cdn_breaker = cdn_breaker

    @property
    def cdn_breaker(self) -> pybreaker.CircuitBreaker:
        if self._cdn_breaker is None:
            self._cdn_breaker = get_circuit_breaker("cdn")
        return self._cdn_breaker

    def publish(self, project_name: str, html: str, owner_email: str) -> PublishResult:
        path = project_html_path(project_name)
        existing = self.repository.get_file(path)
        if existing is None:
            commit_sha = self.repository.create_files_commit(
                {
                    path: html,
                    f"projects/{project_name}/{OWNER_MARKER}": owner_email,
                },
                message=f"Add {project_name} project",
            )
            created = True
        else:
            commit_sha = self.repository.update_file(
                path, html, existing.sha, message=f"Update {project_name} project"
            )
            created = False

        self.object_store.put_html(path, html)
        self._invalidate(project_name)

        logger.info(
            "project_published",
            extra={"project_name": project_name, "commit_sha": commit_sha, "status": "created" if created else "updated"},
        )
        return PublishResult(created=created, commit_sha=commit_sha, url=site_url(project_name))

    def _invalidate(self, project_name: str) -> None:
        if not self.cdn.enabled:
            return
        try:
            self.cdn_breaker.call(self.cdn.invalidate, [f"/projects/{project_name}/*"])
        except pybreaker.CircuitBreakerError:
            cdn_invalidation_failures_total.inc()
            logger.warning("cdn_invalidation_skipped", extra={"project_name": project_name, "reason": "breaker_open"})
        except Exception as e:
            cdn_invalidation_failures_total.inc()
            logger.warning("cdn_invalidation_failed", extra={"project_name": project_name, "error": str(e)})
