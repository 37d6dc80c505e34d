"""
Formal failure normalization for the generation pipeline.
Classifies pipeline and transport failures for retry policy and observability.
"""
from enum import Enum

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from sitepress.services.generation.errors import (
    ImageTooLargeError,
    InvalidImageError,
    MetadataValidationError,
    OperationNotFoundError,
    SignatureVerificationError,
    TemplateNotFoundError,
    TransientInfrastructureError,
    UnsafeContentError,
)


class FailureType(str, Enum):
    AUTHENTICATION = "authentication"  # bad webhook signature
    NOT_FOUND = "not_found"  # operation or lookup miss
    VALIDATION = "validation"  # missing fields, unsafe content, undecodable image
    TRANSIENT = "transient"  # timeouts, throttling, 5xx, conflicts
    RESOURCE_LIMIT = "resource_limit"  # image too large after compression
    BEST_EFFORT = "best_effort"  # CDN invalidation; never fails an operation


# AWS error codes worth retrying
RETRYABLE_AWS_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeoutException",
    "SlowDown",
    "ServiceUnavailable",
    "InternalError",
    "TooManyRequestsException",
})


def classify_failure(exc: BaseException) -> tuple[FailureType, bool]:
    """Returns (failure_type, retry_allowed)."""
    if isinstance(exc, SignatureVerificationError):
        return (FailureType.AUTHENTICATION, False)
    if isinstance(exc, OperationNotFoundError):
        return (FailureType.NOT_FOUND, False)
    if isinstance(exc, ImageTooLargeError):
        return (FailureType.RESOURCE_LIMIT, False)
    if isinstance(exc, (MetadataValidationError, UnsafeContentError, InvalidImageError, TemplateNotFoundError)):
        return (FailureType.VALIDATION, False)
    if isinstance(exc, TransientInfrastructureError):
        return (FailureType.TRANSIENT, True)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429 or 500 <= status < 600:
            return (FailureType.TRANSIENT, True)
        return (FailureType.VALIDATION, False)
    if isinstance(exc, httpx.TransportError):
        return (FailureType.TRANSIENT, True)

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        if error.get("Code") in RETRYABLE_AWS_CODES or status >= 500:
            return (FailureType.TRANSIENT, True)
        return (FailureType.VALIDATION, False)
    if isinstance(exc, BotoCoreError):
        return (FailureType.TRANSIENT, True)

    # Unknown errors (network blips, worker hiccups): treat as transient
    return (FailureType.TRANSIENT, True)
