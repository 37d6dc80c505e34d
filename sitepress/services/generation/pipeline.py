"""
One generation run: snapshot in, published page out.

validate -> template + base maps (cache) -> images -> merge -> inject -> publish.
Raises GenerationError subclasses or transport errors; the orchestrator classifies them.
"""
import logging
import time

from sitepress.schemas.operations import OperationSnapshot
from sitepress.services.images.processor import ImageProcessor
from sitepress.services.injection import inject_content, validate_content
from sitepress.services.publishing.service import PublishResult, Publisher
from sitepress.services.templates.cache import TemplateCache, get_template_cache
from sitepress.utils.metrics import generation_attempts_total, generation_duration_seconds

logger = logging.getLogger(__name__)

BASE_LANGUAGE = "en"


class GenerationPipeline:
    def __init__(
        self,
        template_cache: TemplateCache | None = None,
        image_processor: ImageProcessor | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self.template_cache = template_cache or get_template_cache()
        self.image_processor = image_processor or ImageProcessor()
        self.publisher = publisher or Publisher()

    def render(self, snapshot: OperationSnapshot, images: dict) -> str:
        """Merge template defaults with the customer's content and inject it."""
        template_html = self.template_cache.get_template(snapshot.template_id)
        base_langs = self.template_cache.get_langs(snapshot.template_id, BASE_LANGUAGE)
        base_images = self.template_cache.get_base_images(snapshot.template_id)
        return inject_content(
            template_html,
            langs={**base_langs, **snapshot.langs},
            images={**base_images, **images},
            text_colors=snapshot.text_colors,
            section_backgrounds=snapshot.section_backgrounds,
            image_sizes=snapshot.image_sizes,
            image_z_indexes=snapshot.image_z_indexes,
        )

    def run(self, snapshot: OperationSnapshot) -> PublishResult:
        generation_attempts_total.inc()
        start = time.time()
        log_extra = {"operation_id": snapshot.operation_id, "project_name": snapshot.project_name}

        validate_content(
            langs=snapshot.langs,
            images=snapshot.images,
            text_colors=snapshot.text_colors,
            section_backgrounds=snapshot.section_backgrounds,
            image_sizes=snapshot.image_sizes,
            image_z_indexes=snapshot.image_z_indexes,
        )
        images = self.image_processor.process(snapshot.project_name, snapshot.images)
        html = self.render(snapshot, images)
        result = self.publisher.publish(snapshot.project_name, html, snapshot.email)

        generation_duration_seconds.observe(time.time() - start)
        logger.info("generation_succeeded", extra={**log_extra, "commit_sha": result.commit_sha})
        return result
