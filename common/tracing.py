"""
Request tracing with correlation IDs

Each HTTP request gets a span. The trace id is taken from ``X-Trace-ID``
when the caller sends one, is available to any code running for the request
through ``get_current_trace_id()``, and is echoed back on the response.
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request

logger = logging.getLogger(__name__)

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

TRACE_HEADER = "X-Trace-ID"
SPAN_HEADER = "X-Span-ID"

class TraceSpan:
    """One timed operation, logged as a single JSON line when finished"""

    def __init__(self, service: str, operation: str, trace_id: str = None, parent_span_id: str = None):
        self.service = service
        self.operation = operation
        self.trace_id = trace_id or uuid.uuid4().hex[:16]
        self.span_id = uuid.uuid4().hex[:8]
        self.parent_span_id = parent_span_id
        self.tags = {}
        self.status = "ok"
        self._started = time.monotonic()
        self._token = None

    def add_tag(self, key: str, value):
        self.tags[key] = value
        return self

    def __enter__(self):
        self._token = trace_id_var.set(self.trace_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.status = "error"
            self.add_tag("error.type", exc_type.__name__)
        logger.info("TRACE: " + json.dumps({
            "service": self.service,
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "operation": self.operation,
            "duration_ms": round((time.monotonic() - self._started) * 1000, 2),
            "status": self.status,
            "tags": self.tags,
        }, default=str))
        trace_id_var.reset(self._token)

class Tracer:
    def __init__(self, service_name: str):
        self.service_name = service_name

    def span_for(self, request: Request) -> TraceSpan:
        span = TraceSpan(
            self.service_name,
            f"{request.method} {request.url.path}",
            trace_id=request.headers.get(TRACE_HEADER),
            parent_span_id=request.headers.get(SPAN_HEADER),
        )
        return span.add_tag("http.method", request.method)

def get_current_trace_id() -> Optional[str]:
    return trace_id_var.get()

async def tracing_middleware(request: Request, call_next, tracer: Tracer):
    """FastAPI middleware: one span per request, ids echoed in response headers"""
    with tracer.span_for(request) as span:
        request.state.trace_id = span.trace_id
        response = await call_next(request)
        span.add_tag("http.status_code", response.status_code)
        if response.status_code >= 500:
            span.status = "error"
        response.headers[TRACE_HEADER] = span.trace_id
        response.headers[SPAN_HEADER] = span.span_id
        return response
