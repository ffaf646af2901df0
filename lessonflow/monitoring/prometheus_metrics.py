"""
Prometheus metrics for the lesson engine.

Service timings come from the ``@BaseService.measure_operation`` decorator;
the remaining counters cover lesson transitions, refunds and the realtime
reconciliation loop.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so tests and embedding apps don't collide on the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lessonflow_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "lessonflow_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lessonflow_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

lesson_transitions_total = Counter(
    "lessonflow_lesson_transitions_total",
    "Lesson state transitions by action and outcome",
    ["action", "outcome"],  # outcome: applied | invalid | conflict | too_late
    registry=REGISTRY,
)

credits_refunded_total = Counter(
    "lessonflow_credits_refunded_total",
    "Credit units refunded on cancellation",
    registry=REGISTRY,
)

upstream_failures_total = Counter(
    "lessonflow_upstream_failures_total",
    "Aggregator sub-fetches that failed and degraded to an empty list",
    ["source"],
    registry=REGISTRY,
)

realtime_refreshes_total = Counter(
    "lessonflow_realtime_refreshes_total",
    "Reconciliation refreshes by trigger and outcome",
    ["trigger", "outcome"],  # outcome: success | timeout | error
    registry=REGISTRY,
)

realtime_coalesced_total = Counter(
    "lessonflow_realtime_coalesced_total",
    "Refresh triggers absorbed by an in-flight or queued refresh",
    ["trigger"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'LessonStateMachine')
            operation: Operation/method name (e.g., 'acknowledge')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_transition(action: str, outcome: str) -> None:
        lesson_transitions_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_credits_refunded(units: int) -> None:
        credits_refunded_total.inc(units)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_upstream_failure(source: str) -> None:
        upstream_failures_total.labels(source=source).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_refresh(trigger: str, outcome: str) -> None:
        realtime_refreshes_total.labels(trigger=trigger, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_coalesced(trigger: str) -> None:
        realtime_coalesced_total.labels(trigger=trigger).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format (short-lived cache)."""
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
