"""
Pre-injection content checks. Runs before any substitution so a rejected
operation never produces partial output.
"""
import logging
import re
from typing import Any, Mapping

from sitepress.services.generation.errors import UnsafeContentError

logger = logging.getLogger(__name__)

UNSAFE_TEXT_RE = re.compile(r"<\s*script|javascript\s*:|\bon\w+\s*=", re.IGNORECASE)
UNSAFE_URL_SCHEMES = ("javascript:", "vbscript:")
CSS_LENGTH_RE = re.compile(r"^-?\d+(?:\.\d+)?(?:px|%|em|rem|vw|vh)?$|^auto$")
COLOR_FORBIDDEN_RE = re.compile(r"[;{}<>\"]|url\s*\(|expression\s*\(", re.IGNORECASE)
COLOR_COMMON_RE = re.compile(
    r"^(#[0-9a-f]{3,8}|(rgb|rgba|hsl|hsla)\([^)]*\)|[a-z]+|var\(--[\w-]+\))$",
    re.IGNORECASE,
)
GEOMETRY_FIELDS = ("width", "height", "left", "top")


def _compact(value: str) -> str:
    return re.sub(r"[\s\x00-\x1f]+", "", value).lower()


def _check_text(langs: Mapping[str, Any]) -> None:
    for key, value in langs.items():
        if value is None:
            continue
        if UNSAFE_TEXT_RE.search(str(value)):
            raise UnsafeContentError(
                f"Unsafe markup in text '{key}'",
                detail={"field": "langs", "key": key},
            )


def _check_images(images: Mapping[str, Any]) -> None:
    for key, value in images.items():
        if not isinstance(value, str):
            raise UnsafeContentError(f"Image '{key}' is not a string", detail={"field": "images", "key": key})
        if _compact(value).startswith(UNSAFE_URL_SCHEMES):
            raise UnsafeContentError(f"Unsafe image URL for '{key}'", detail={"field": "images", "key": key})


def _check_colors(field: str, colors: Mapping[str, Any]) -> None:
    for key, value in colors.items():
        text = str(value).strip()
        if COLOR_FORBIDDEN_RE.search(text):
            raise UnsafeContentError(f"Unsafe color value for '{key}'", detail={"field": field, "key": key})
        if text and not COLOR_COMMON_RE.match(text):
            logger.warning("unusual_color_value", extra={"key": key, "reason": field})


def _is_length(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(CSS_LENGTH_RE.match(value.strip()))


def _check_geometry(image_sizes: Mapping[str, Any]) -> None:
    for key, geometry in image_sizes.items():
        if not isinstance(geometry, Mapping):
            raise UnsafeContentError(
                f"Geometry for '{key}' must be an object",
                detail={"field": "image_sizes", "key": key},
            )
        for name in GEOMETRY_FIELDS:
            if name in geometry and not _is_length(geometry[name]):
                raise UnsafeContentError(
                    f"Invalid {name} for image '{key}'",
                    detail={"field": "image_sizes", "key": key, "property": name},
                )


def _check_z_indexes(image_z_indexes: Mapping[str, Any]) -> None:
    for key, value in image_z_indexes.items():
        try:
            int(value)
        except (TypeError, ValueError):
            raise UnsafeContentError(
                f"Invalid z-index for image '{key}'",
                detail={"field": "image_z_indexes", "key": key},
            )


def validate_content(
    langs: Mapping[str, Any] | None = None,
    images: Mapping[str, Any] | None = None,
    text_colors: Mapping[str, Any] | None = None,
    section_backgrounds: Mapping[str, Any] | None = None,
    image_sizes: Mapping[str, Any] | None = None,
    image_z_indexes: Mapping[str, Any] | None = None,
) -> None:
    """Raise UnsafeContentError on the first unsafe value."""
    _check_text(langs or {})
    _check_images(images or {})
    _check_colors("text_colors", text_colors or {})
    _check_colors("section_backgrounds", section_backgrounds or {})
    _check_geometry(image_sizes or {})
    _check_z_indexes(image_z_indexes or {})
