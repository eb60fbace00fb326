"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
unlocks_total = Counter(
    "unlocks_total",
    "Total content unlocks persisted",
    ["method"],  # coins, ad, grant
)

unlock_rejected_total = Counter(
    "unlock_rejected_total",
    "Total unlock attempts rejected",
    ["reason"],
)

ad_verifications_total = Counter(
    "ad_verifications_total",
    "Total rewarded-ad verification outcomes",
    ["outcome"],
)

ad_sessions_swept_total = Counter(
    "ad_sessions_swept_total",
    "Total expired ad sessions removed by the sweeper",
)

purchases_total = Counter(
    "purchases_total",
    "Total purchase credit outcomes",
    ["status"],
)

coins_credited_total = Counter(
    "coins_credited_total",
    "Total coins credited",
    ["source"],  # purchase, admin, reconcile
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)


router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
