# ==== CORRELATION ID MIDDLEWARE ==== #

"""
Correlation ID middleware for request tracing.

Reads or creates ``X-Correlation-Id``, exposes it on ``request.state`` for
error bodies and logs, echoes it on the response, wraps the request in a
tracing span and records request latency.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from onramp.observability.metrics import http_request_seconds
from onramp.observability.tracing import get_tracer


tracer = get_tracer(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Attach correlation ids, spans and latency metrics to every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()

        with tracer.start_as_current_span("http_request") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.url", str(request.url))
            span.set_attribute("correlation_id", correlation_id)

            response = await call_next(request)
            response.headers["X-Correlation-Id"] = correlation_id

            # Route template keeps label cardinality bounded
            route = request.scope.get("route")
            path = getattr(route, "path", "unmatched")
            http_request_seconds.labels(
                method=request.method,
                path=path,
            ).observe(time.perf_counter() - start_time)

            span.set_attribute("http.status_code", response.status_code)
            return response
