"""Prometheus metrics: HTTP instrumentation and user cache counters."""

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

# key_kind: "user" (per-id key) or "all_users" (collection key)
CACHE_LOOKUPS = Counter(
    "user_cache_lookups_total",
    "User cache lookups by key kind and outcome",
    ["key_kind", "outcome"],
)

CACHE_INVALIDATIONS = Counter(
    "user_cache_invalidations_total",
    "User cache keys deleted by write operations",
    ["key_kind"],
)


def record_cache_lookup(key_kind: str, hit: bool) -> None:
    CACHE_LOOKUPS.labels(key_kind=key_kind, outcome="hit" if hit else "miss").inc()


def record_cache_invalidation(key_kind: str) -> None:
    CACHE_INVALIDATIONS.labels(key_kind=key_kind).inc()


def setup_monitoring(app: FastAPI) -> None:
    """Instrument the app and expose /metrics (enabled by ENABLE_METRICS=true)."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/favicon.ico"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
