"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
trainings_submitted_total = Counter(
    "trainings_submitted_total",
    "Total number of training jobs submitted to the provider",
)

training_transitions_total = Counter(
    "training_transitions_total",
    "Training job status changes",
    ["channel", "status"],  # channel: webhook, poll
)

training_webhooks_total = Counter(
    "training_webhooks_total",
    "Training webhook deliveries by outcome",
    ["outcome"],  # applied, invalid_payload, invalid_signature, not_found, store_failure
)

training_webhooks_unsigned_total = Counter(
    "training_webhooks_unsigned_total",
    "Webhook deliveries accepted without a signature header",
)

training_polls_total = Counter(
    "training_polls_total",
    "Training status polls by outcome",
    ["outcome"],  # applied, skipped, provider_unavailable, not_found, store_failure
)

provider_requests_total = Counter(
    "provider_requests_total",
    "Total training provider API requests",
    ["operation", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Training provider API request duration",
    ["operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
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
