"""
Image processing for one operation: decode embedded images, fit them under the
size ceiling, upload in parallel and return the images map rewritten to hosted URLs.
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from sitepress.core.config import settings
from sitepress.services.images import compression
from sitepress.services.images.decoding import DecodedImage, decode_data_url, is_data_url
from sitepress.services.publishing.object_store import ObjectStore
from sitepress.utils.metrics import image_upload_fallbacks_total

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def image_key(project_name: str, image_id: str, extension: str) -> str:
    safe_id = _UNSAFE_KEY_CHARS.sub("-", image_id).strip("-") or "image"
    return f"projects/{project_name}/images/{safe_id}.{extension}"


class ImageProcessor:
    def __init__(self, object_store: ObjectStore | None = None, max_workers: int | None = None) -> None:
        self.object_store = object_store or ObjectStore()
        self.max_workers = max_workers or settings.image_upload_max_workers
        self.target_bytes = settings.image_max_bytes

    def process(self, project_name: str, images: dict[str, Any]) -> dict[str, Any]:
        """
        Hosted URLs and project paths pass through unchanged; data URLs are uploaded.
        Decode/format errors are raised before any upload starts.
        """
        result = dict(images)
        decoded = [
            decode_data_url(image_id, value)
            for image_id, value in images.items()
            if is_data_url(value)
        ]
        if not decoded:
            return result

        workers = max(1, min(self.max_workers, len(decoded)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="image-upload") as executor:
            futures = {
                image.image_id: executor.submit(self._prepare_and_upload, project_name, image)
                for image in decoded
            }
            for image_id, future in futures.items():
                result[image_id] = future.result()
        logger.info(
            "images_processed",
            extra={"project_name": project_name, "size_bytes": sum(len(i.data) for i in decoded)},
        )
        return result

    def _prepare_and_upload(self, project_name: str, image: DecodedImage) -> str:
        if len(image.data) <= self.target_bytes:
            return self._upload(project_name, image.image_id, image.data, image.extension, image.mime)

        compressed = compression.compress_to_fit(image, self.target_bytes)
        try:
            return self._upload(
                project_name, image.image_id, compressed.data, compressed.extension, compressed.mime
            )
        except Exception as e:
            image_upload_fallbacks_total.inc()
            logger.warning(
                "image_upload_fallback_to_original",
                extra={"project_name": project_name, "image_id": image.image_id, "error": str(e)},
            )
            return self._upload(project_name, image.image_id, image.data, image.extension, image.mime)

    def _upload(self, project_name: str, image_id: str, data: bytes, extension: str, mime: str) -> str:
        key = image_key(project_name, image_id, extension)
        self.object_store.put_asset(key, data, mime)
        return self.object_store.public_url(key)
