"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
import re

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma-separated origins (the editor). Empty = default list in main.py.
    cors_origins: str = ""
    # Public domain the generated sites are served from: https://{project}.{site_domain}
    site_domain: str = "e-info.click"
    editor_url: str = "https://editor.e-info.click"

    # ===========================================
    # DATABASE (metadata store)
    # ===========================================
    database_url: str  # Required, no default
    operation_ttl_days: int = 7  # abandoned pending operations are purged after this

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default
    generation_queue_name: str = "generation"
    queue_max_receive_count: int = 3  # deliveries before a message is dead-lettered
    queue_retry_base_seconds: int = 30

    # ===========================================
    # PAYMENT WEBHOOK
    # ===========================================
    payment_webhook_secret: str  # Required, no default
    payment_webhook_tolerance_seconds: int = 300

    # ===========================================
    # ARTIFACT REPOSITORY (GitHub)
    # ===========================================
    github_token: str  # Required, no default
    github_owner: str  # Required, no default
    github_repo: str  # Required, no default
    github_branch: str = "master"
    github_api_url: str = "https://api.github.com"
    github_webhook_secret: str = ""
    github_timeout: float = 30.0

    # ===========================================
    # OBJECT STORE & CDN (AWS)
    # ===========================================
    aws_region: str = "eu-south-2"
    s3_bucket_name: str = "static-websites"
    s3_endpoint_url: str | None = None  # optional, for S3-compatible stores
    # Public base URL prepended to uploaded image paths. Empty = site-relative paths.
    s3_public_base_url: str = ""
    html_cache_control: str = "public, max-age=60"
    asset_cache_control: str = "public, max-age=31536000, immutable"
    cloudfront_distribution_id: str = ""  # Empty = CDN invalidation disabled

    # ===========================================
    # EMAIL (SES)
    # ===========================================
    ses_region: str = "eu-west-1"
    from_email: str = "no-reply@e-info.click"

    # ===========================================
    # IMAGE PROCESSING
    # ===========================================
    image_max_bytes: int = 1_048_576  # ceiling for a single uploaded image
    image_quality_start: float = 0.8
    image_quality_floor: float = 0.3
    image_quality_step: float = 0.1
    image_min_scale: float = 0.3
    image_downscale_enabled: bool = True
    image_upload_max_workers: int = 8

    # ===========================================
    # ORCHESTRATOR
    # ===========================================
    generation_max_retries: int = 3
    generation_retry_base_seconds: float = 2.0
    generation_retry_backoff_rate: float = 2.0
    orchestrator_timeout_seconds: int = 600
    # processing rows older than timeout + margin belong to a dead worker
    processing_stuck_margin_seconds: int = 120

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None  # Optional, but required for /operations/*/generate

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # ===========================================
    # STATE MANAGEMENT
    # ===========================================
    idempotency_ttl: int = 86400  # 24 hours
    confirmation_code_ttl: int = 300  # 5 minutes

    @field_validator("site_domain")
    @classmethod
    def validate_site_domain(cls, v: str) -> str:
        """Site domain is used to build public URLs; keep it bare."""
        v = v.strip().lower()
        if not re.fullmatch(r"[a-z0-9.-]+\.[a-z]{2,}", v):
            raise ValueError("site_domain must be a bare domain like example.com")
        return v

    @field_validator("payment_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Ensure webhook secret is reasonably secure."""
        if len(v) < 16:
            raise ValueError("payment_webhook_secret must be at least 16 characters")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
