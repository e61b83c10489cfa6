"""
Request context middleware for log correlation.

WHAT: Assigns every request an ID, exposes it through a ContextVar, and
stamps it onto every log record.

WHY: A ticket update fans out into detached notification tasks that log
long after the response is sent. Tagging every record with the request
ID ties those lines back to the request that caused them.

HOW:
- An incoming X-Request-ID header is honored, otherwise a UUID4 is used
- The ID is stored in request.state and a ContextVar, and echoed back
- asyncio tasks copy the current context, so detached tasks inherit it
- RequestIdFilter adds record.request_id for the log format
"""

import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped data for logging.

    Fields:
    - request_id: Correlation ID
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    path: str
    method: str


# WHY: ContextVar keeps concurrent requests isolated from each other
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request (or a task spawned by one), None otherwise
    """
    return _request_context.get()


def get_request_id() -> str:
    ctx = _request_context.get()
    return ctx.request_id if ctx else "-"


class RequestIdFilter(logging.Filter):
    """
    Logging filter that sets record.request_id.

    Example format: "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def _incoming_request_id(request: Request) -> Optional[str]:
    value = request.headers.get(REQUEST_ID_HEADER)
    if value and len(value) <= 128 and value.isprintable():
        return value.strip()
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns and propagates the request ID.

    HOW: Stores context in both:
    - request.state (for access from request handlers)
    - ContextVar (for services, DAOs and log records)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request) or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
