"""
Prometheus metrics endpoint.

Public, unauthenticated, following standard Prometheus practice. Exposes the
metrics collected by @measure_operation and the engine counters.
"""

from fastapi import APIRouter, Response

from lessonflow.monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["monitoring"])


@router.get("/metrics/prometheus", include_in_schema=False)
async def get_prometheus_metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
