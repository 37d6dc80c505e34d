"""
Template & language cache.

One instance per worker process (get_template_cache), populated on miss from the artifact
repository and never evicted. Tests construct a fresh TemplateCache around a fake repository.
"""
import json
import logging
import threading
from functools import lru_cache
from typing import Any

from sitepress.services.generation.errors import TemplateNotFoundError
from sitepress.services.publishing.repository import ArtifactRepository
from sitepress.utils.metrics import template_cache_events_total

logger = logging.getLogger(__name__)


class TemplateCache:
    def __init__(self, repository: ArtifactRepository) -> None:
        self.repository = repository
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str, loader) -> Any:
        with self._lock:
            if key in self._entries:
                self._hits += 1
                template_cache_events_total.labels(result="hit").inc()
                return self._entries[key]
        value = loader()
        with self._lock:
            self._misses += 1
            template_cache_events_total.labels(result="miss").inc()
            self._entries.setdefault(key, value)
            return self._entries[key]

    def _load_json(self, path: str) -> dict:
        text = self.repository.get_text(path)
        if text is None:
            return {}
        try:
            data = json.loads(text)
        except ValueError:
            logger.warning("template_json_invalid", extra={"key": path})
            return {}
        return data if isinstance(data, dict) else {}

    def get_template(self, template_id: str) -> str:
        def load() -> str:
            html = self.repository.get_text(f"templates/{template_id}/index.html")
            if html is None:
                raise TemplateNotFoundError(
                    f"Template '{template_id}' not found", detail={"template_id": template_id}
                )
            return html

        return self._lookup(f"template:{template_id}", load)

    def get_langs(self, template_id: str, lang: str = "en") -> dict:
        return self._lookup(
            f"lang:{template_id}:{lang}",
            lambda: self._load_json(f"templates/{template_id}/langs/{lang}.json"),
        )

    def get_base_images(self, template_id: str) -> dict:
        return self._lookup(
            f"images:{template_id}",
            lambda: self._load_json(f"templates/{template_id}/assets/images.json"),
        )

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"hits": self._hits, "misses": self._misses, "entries": len(self._entries)}


@lru_cache(maxsize=1)
def get_template_cache() -> TemplateCache:
    """Process-wide cache, created on first use in each worker."""
    return TemplateCache(ArtifactRepository())
