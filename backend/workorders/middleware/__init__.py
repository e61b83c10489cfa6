"""
Middleware package.

WHY: Middleware provides cross-cutting concerns (request correlation for
logging) that apply to all requests.
"""

from workorders.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    RequestIdFilter,
    get_request_context,
    get_request_id,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "RequestIdFilter",
    "get_request_context",
    "get_request_id",
]
