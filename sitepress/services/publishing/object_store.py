"""
Object store (S3) and CDN (CloudFront) clients via boto3.
"""
import logging
import time

import boto3

from sitepress.core.config import settings

logger = logging.getLogger(__name__)


def _s3_client():
    session = boto3.session.Session(region_name=settings.aws_region)
    client_kwargs = {}
    if settings.s3_endpoint_url:
        client_kwargs["endpoint_url"] = settings.s3_endpoint_url
    return session.client("s3", **client_kwargs)


class ObjectStore:
    def __init__(self, client=None, bucket: str | None = None) -> None:
        self._client = client
        self.bucket = bucket or settings.s3_bucket_name

    @property
    def client(self):
        if self._client is None:
            self._client = _s3_client()
        return self._client

    def put(self, key: str, body: bytes, content_type: str, cache_control: str) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            CacheControl=cache_control,
        )
        logger.info("object_stored", extra={"key": key, "size_bytes": len(body)})

    def put_html(self, key: str, html: str) -> None:
        self.put(key, html.encode("utf-8"), "text/html; charset=utf-8", settings.html_cache_control)

    def put_asset(self, key: str, body: bytes, content_type: str) -> None:
        self.put(key, body, content_type, settings.asset_cache_control)

    def public_url(self, key: str) -> str:
        """URL the published page uses for an uploaded object."""
        base = settings.s3_public_base_url.rstrip("/")
        return f"{base}/{key}" if base else f"/{key}"


class CdnInvalidator:
    def __init__(self, client=None, distribution_id: str | None = None) -> None:
        self._client = client
        self.distribution_id = (
            distribution_id if distribution_id is not None else settings.cloudfront_distribution_id
        )

    @property
    def enabled(self) -> bool:
        return bool(self.distribution_id)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("cloudfront")
        return self._client

    def invalidate(self, paths: list[str]) -> str | None:
        """Create an invalidation; returns its id, or None when no distribution is configured."""
        if not self.enabled:
            return None
        response = self.client.create_invalidation(
            DistributionId=self.distribution_id,
            InvalidationBatch={
                "Paths": {"Quantity": len(paths), "Items": paths},
                "CallerReference": f"sitepress-{time.time_ns()}",
            },
        )
        invalidation_id = response["Invalidation"]["Id"]
        logger.info("cdn_invalidation_created", extra={"key": ",".join(paths)})
        return invalidation_id
