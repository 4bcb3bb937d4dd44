"""Request tracing middleware for the URL shortener API."""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from opentelemetry.trace import SpanKind
from snaplink.core.telemetry import get_tracer, get_meter

tracer = get_tracer("snaplink.middleware")
meter = get_meter("snaplink.middleware")

request_counter = meter.create_counter(
    name="snaplink.http.requests",
    description="Number of HTTP requests",
    unit="1",
)

request_duration = meter.create_histogram(
    name="snaplink.http.duration",
    description="Duration of HTTP requests",
    unit="ms",
)


class TracingMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a span and request metrics for each request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.perf_counter()
        method = request.method

        with tracer.start_as_current_span(
            f"{method} {request.url.path}",
            attributes={
                "http.method": method,
                "http.target": request.url.path,
                "http.flavor": request.scope.get("http_version", ""),
            },
            kind=SpanKind.SERVER,
        ) as span:
            response = await call_next(request)

            # Route template keeps metric cardinality bounded (/{short_code}, not every code)
            route = request.scope.get("route")
            attributes = {
                "http.method": method,
                "http.route": getattr(route, "path", "unmatched"),
                "http.status_code": response.status_code,
            }
            span.update_name(f"{method} {attributes['http.route']}")
            span.set_attribute("http.status_code", response.status_code)

            request_counter.add(1, attributes)
            request_duration.record((time.perf_counter() - start_time) * 1000, attributes)

            return response
