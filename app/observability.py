import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.metrics import HTTP_REQUEST_LATENCY, HTTP_REQUESTS

logger = logging.getLogger("app.requests")

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    # Labelled by route template, never the raw path.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id, access log line and request metrics for every call."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - start
            route = _route_template(request)
            HTTP_REQUESTS.labels(request.method, route, "500").inc()
            HTTP_REQUEST_LATENCY.labels(request.method, route).observe(elapsed)
            logger.exception(
                "%s %s failed after %.1fms",
                request.method,
                request.url.path,
                elapsed * 1000,
                extra={"request_id": request_id},
            )
            raise

        elapsed = time.perf_counter() - start
        route = _route_template(request)
        HTTP_REQUESTS.labels(request.method, route, str(response.status_code)).inc()
        HTTP_REQUEST_LATENCY.labels(request.method, route).observe(elapsed)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed * 1000,
            extra={
                "request_id": request_id,
                "organisation_id": request.headers.get("X-Organisation-Id"),
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
