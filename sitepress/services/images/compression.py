"""
Re-encode raster images until they fit under the size ceiling.

Quality steps are integer tenths (8, 7, ... 3) so the loop always has the same
number of iterations regardless of float rounding.
"""
import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from sitepress.core.config import settings
from sitepress.services.generation.errors import ImageFormatError, ImageTooLargeError, InvalidImageError
from sitepress.services.images.decoding import DecodedImage
from sitepress.utils.metrics import image_reencodes_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressedImage:
    data: bytes
    subtype: str  # "jpeg" or "webp"
    extension: str
    quality: float
    scale: float

    @property
    def mime(self) -> str:
        return f"image/{self.subtype}"


def quality_steps() -> list[float]:
    start = round(settings.image_quality_start * 10)
    floor = round(settings.image_quality_floor * 10)
    step = max(1, round(settings.image_quality_step * 10))
    return [tenths / 10 for tenths in range(start, floor - 1, -step)]


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def _scale_factor(size_bytes: int, target_bytes: int) -> float:
    if not settings.image_downscale_enabled or size_bytes <= target_bytes:
        return 1.0
    return max(settings.image_min_scale, min(1.0, math.sqrt(target_bytes / size_bytes)))


def compress_to_fit(image: DecodedImage, target_bytes: int) -> CompressedImage:
    """First encoding <= target_bytes wins; ImageTooLargeError if none does."""
    if image.is_vector:
        raise ImageFormatError(image.image_id, f"{image.mime} cannot be re-encoded")
    try:
        img = Image.open(io.BytesIO(image.data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(image.image_id, f"cannot decode image: {e}")

    alpha = _has_alpha(img)
    subtype, fmt, extension = ("webp", "WEBP", "webp") if alpha else ("jpeg", "JPEG", "jpg")
    img = img.convert("RGBA" if alpha else "RGB")

    scale = _scale_factor(len(image.data), target_bytes)
    if scale < 1.0:
        new_size = (max(1, int(img.width * scale)), max(1, int(img.height * scale)))
        img = img.resize(new_size, Image.LANCZOS)

    smallest = len(image.data)
    for quality in quality_steps():
        buf = io.BytesIO()
        img.save(buf, format=fmt, quality=round(quality * 100))
        data = buf.getvalue()
        smallest = min(smallest, len(data))
        logger.debug(
            "image_reencode_attempt",
            extra={"image_id": image.image_id, "quality": quality, "size_bytes": len(data), "target_bytes": target_bytes},
        )
        if len(data) <= target_bytes:
            image_reencodes_total.labels(outcome="fit").inc()
            logger.info(
                "image_reencoded",
                extra={"image_id": image.image_id, "quality": quality, "size_bytes": len(data), "target_bytes": target_bytes},
            )
            return CompressedImage(data=data, subtype=subtype, extension=extension, quality=quality, scale=scale)

    image_reencodes_total.labels(outcome="too_large").inc()
    raise ImageTooLargeError(image.image_id, smallest, target_bytes)
