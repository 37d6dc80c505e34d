"""
Exception hierarchy for the generation pipeline.
Every error carries a short user-facing message (stored as failure_reason) and a detail dict for logs.
"""
from typing import Any


class GenerationError(Exception):
    """Base error for anything that can fail an operation."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class OperationNotFoundError(GenerationError):
    pass


class MetadataValidationError(GenerationError):
    """Operation record is missing required fields or has a malformed shape."""


class UnsafeContentError(GenerationError):
    """Customization content failed the pre-injection safety check."""


class TemplateNotFoundError(GenerationError):
    pass


class InvalidImageError(GenerationError):
    """Embedded image data could not be decoded."""

    def __init__(self, image_id: str, message: str):
        super().__init__(f"Image '{image_id}': {message}", {"image_id": image_id})
        self.image_id = image_id


class ImageFormatError(InvalidImageError):
    """Image format cannot be re-encoded (vector / non-rasterizable)."""


class ImageTooLargeError(GenerationError):
    def __init__(self, image_id: str, size_bytes: int, target_bytes: int):
        super().__init__(
            f"Image '{image_id}' is too large: {size_bytes} bytes, limit {target_bytes} bytes",
            {"image_id": image_id, "size_bytes": size_bytes, "target_bytes": target_bytes},
        )
        self.image_id = image_id


class TransientInfrastructureError(GenerationError):
    """Downstream timeout/throttling; safe to retry."""


class PublishConflictError(TransientInfrastructureError):
    """Artifact repository file changed since it was read (content hash mismatch)."""


class SignatureVerificationError(Exception):
    """Webhook signature is missing, malformed, stale or wrong."""
