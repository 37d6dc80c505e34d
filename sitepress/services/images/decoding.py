"""
data:image/<fmt>;base64,<payload> parsing.
"""
import base64
import binascii
import re
from dataclasses import dataclass

from sitepress.services.generation.errors import InvalidImageError

DATA_URL_RE = re.compile(r"^data:image/([a-z0-9.+-]+);base64,(.*)$", re.IGNORECASE | re.DOTALL)

# subtype -> file extension
SUPPORTED_FORMATS = {
    "png": "png",
    "jpeg": "jpg",
    "jpg": "jpg",
    "gif": "gif",
    "webp": "webp",
    "svg+xml": "svg",
}
VECTOR_FORMATS = frozenset({"svg+xml"})


@dataclass(frozen=True)
class DecodedImage:
    image_id: str
    subtype: str  # e.g. "png", "svg+xml"
    data: bytes

    @property
    def mime(self) -> str:
        return f"image/{'jpeg' if self.subtype == 'jpg' else self.subtype}"

    @property
    def extension(self) -> str:
        return SUPPORTED_FORMATS[self.subtype]

    @property
    def is_vector(self) -> bool:
        return self.subtype in VECTOR_FORMATS


def is_data_url(value: str) -> bool:
    return isinstance(value, str) and value[:11].lower() == "data:image/"


def decode_data_url(image_id: str, value: str) -> DecodedImage:
    match = DATA_URL_RE.match(value.strip())
    if not match:
        raise InvalidImageError(image_id, "not a base64 image data URL")
    subtype = match.group(1).lower()
    if subtype not in SUPPORTED_FORMATS:
        raise InvalidImageError(image_id, f"unsupported format image/{subtype}")
    payload = re.sub(r"\s+", "", match.group(2))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImageError(image_id, "malformed base64 payload")
    if not data:
        raise InvalidImageError(image_id, "empty image payload")
    return DecodedImage(image_id=image_id, subtype=subtype, data=data)
