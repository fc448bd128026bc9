from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

crm_entity_mutations_total = Counter(
    "crm_entity_mutations_total",
    "Total CRM entity mutations by entity type and action",
    ["entity_type", "action"],
)

crm_activities_recorded_total = Counter(
    "crm_activities_recorded_total",
    "Total activity log entries by activity type",
    ["activity_type"],
)

crm_dashboard_compute_seconds = Histogram(
    "crm_dashboard_compute_seconds",
    "Dashboard stats computation time in seconds",
)


_INT_SEGMENT_RE = re.compile(r"/\d+(?=/|$)")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    return _INT_SEGMENT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path", None) if route is not None else None
    if isinstance(route_path, str) and route_path:
        return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_entity_mutation(entity_type: str, action: str) -> None:
    crm_entity_mutations_total.labels(entity_type=entity_type, action=action).inc()


def observe_activity_recorded(activity_type: str) -> None:
    crm_activities_recorded_total.labels(activity_type=activity_type).inc()


def observe_dashboard_compute(duration: float) -> None:
    crm_dashboard_compute_seconds.observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
