from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Request, Response
import time

router = APIRouter()

REQUEST_COUNT = Counter(
    "taskpilot_http_requests_total",
    "HTTP requests served",
    ["method", "endpoint", "http_status"]
)

REQUEST_LATENCY = Histogram(
    "taskpilot_http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"]
)

UNHANDLED_ERRORS = Counter(
    "taskpilot_http_unhandled_errors_total",
    "Requests that ended in an unhandled exception",
    ["endpoint"]
)

AUTH_FAILURES = Counter(
    "taskpilot_auth_failures_total",
    "Auth flow requests rejected, by error code",
    ["error"]
)

SKIP_PATHS = ("/metrics", "/health")


@router.get("/")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_auth_failure(code: str) -> None:
    AUTH_FAILURES.labels(error=code).inc()


def _endpoint_label(request: Request) -> str:
    # Route template keeps /tasks/{task_id} as one series
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def metrics_middleware(request: Request, call_next):
    if request.url.path.rstrip("/") in SKIP_PATHS:
        return await call_next(request)

    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        UNHANDLED_ERRORS.labels(endpoint=_endpoint_label(request)).inc()
        raise

    endpoint = _endpoint_label(request)
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.perf_counter() - started)
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        http_status=response.status_code
    ).inc()
    return response
