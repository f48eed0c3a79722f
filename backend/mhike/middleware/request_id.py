"""
M-Hike API: Request ID Middleware
===================================

What:  Tags every request with a correlation ID and echoes it back in the
       X-Request-ID response header.
How:   Reuses a well-formed client-supplied X-Request-ID, otherwise mints a
       short uuid4 prefix. The value lives in a ContextVar so loggers and
       exception handlers can read it without access to the request.
Who:   Outermost middleware; error bodies carry the same ID as `request_id`.

Example:
    → POST /api/hikes/3/observations        (no X-Request-ID)
    ← 400 {"error": "upload_rejected", ..., "request_id": "9f2c41d0"}
      X-Request-ID: 9f2c41d0
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client IDs end up in log lines; keep them short and printable
_CLIENT_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns and propagates the per-request correlation ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "")
        rid = supplied if _CLIENT_ID.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
