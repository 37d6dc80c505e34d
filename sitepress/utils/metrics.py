"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
operations_enqueued_total = Counter(
    "operations_enqueued_total",
    "Total number of generation messages enqueued",
    ["source"],  # payment_webhook, admin, confirmation
)

operations_completed_total = Counter(
    "operations_completed_total",
    "Total number of operations that reached completed",
)

operations_failed_total = Counter(
    "operations_failed_total",
    "Total number of operations that reached failed",
    ["failure_type"],
)

generation_attempts_total = Counter(
    "generation_attempts_total",
    "Total generation pipeline invocations (including retries)",
)

webhook_rejections_total = Counter(
    "webhook_rejections_total",
    "Webhook requests rejected before any state change",
    ["webhook", "reason"],
)

image_reencodes_total = Counter(
    "image_reencodes_total",
    "Images that required re-encoding to fit the size ceiling",
    ["outcome"],  # fit, too_large
)

image_upload_fallbacks_total = Counter(
    "image_upload_fallbacks_total",
    "Re-encoded image uploads that fell back to the original bytes",
)

cdn_invalidation_failures_total = Counter(
    "cdn_invalidation_failures_total",
    "CDN invalidations that failed (best-effort)",
)

queue_dead_letters_total = Counter(
    "queue_dead_letters_total",
    "Generation messages dropped after exhausting deliveries",
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

template_cache_events_total = Counter(
    "template_cache_events_total",
    "Template cache lookups",
    ["result"],  # hit, miss
)

# Histograms
generation_duration_seconds = Histogram(
    "generation_duration_seconds",
    "Single generation pipeline run duration",
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
)

orchestrator_duration_seconds = Histogram(
    "orchestrator_duration_seconds",
    "Whole orchestrator run duration (including retries)",
    buckets=[1, 5, 10, 30, 60, 120, 300, 600],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
