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

access_denied_total = Counter(
    "pipeline_access_denied_total",
    "Total denied job access checks",
    ["resource", "capability"],
)

audit_entries_written_total = Counter(
    "pipeline_audit_entries_written_total",
    "Total edit history entries written",
    ["edit_type"],
)

commission_submission_conflicts_total = Counter(
    "commission_submission_conflicts_total",
    "Total rejected duplicate commission submissions by detection point",
    ["detected_by"],
)

commission_requests_reviewed_total = Counter(
    "commission_requests_reviewed_total",
    "Total reviewed commission requests by outcome",
    ["outcome"],
)

lien_integrity_warnings_total = Counter(
    "lien_integrity_warnings_total",
    "Total lien-rights data integrity warnings by code",
    ["code"],
)

mutations_rate_limited_total = Counter(
    "pipeline_mutations_rate_limited_total",
    "Total mutations rejected by the per-user rate limiter",
    ["route_group"],
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_access_denied(resource: str, capability: str) -> None:
    access_denied_total.labels(resource=resource, capability=capability).inc()


def observe_audit_entries_written(edit_type: str, count: int = 1) -> None:
    if count > 0:
        audit_entries_written_total.labels(edit_type=edit_type).inc(count)


def observe_commission_conflict(detected_by: str) -> None:
    commission_submission_conflicts_total.labels(detected_by=detected_by).inc()


def observe_commission_review(outcome: str) -> None:
    commission_requests_reviewed_total.labels(outcome=outcome).inc()


def observe_lien_integrity_warning(code: str) -> None:
    lien_integrity_warnings_total.labels(code=code).inc()


def observe_rate_limited(route_group: str) -> None:
    mutations_rate_limited_total.labels(route_group=route_group).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
