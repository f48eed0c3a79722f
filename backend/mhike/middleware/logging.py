"""
M-Hike API: Access Logging Middleware
=======================================

What:  One access log line per request: method, path, status, duration,
       request ID and client address. Uploads also log their declared
       body size, which makes rejected 20MB+ uploads easy to spot.
Who:   Runs inside RequestIDMiddleware, so the request ID is already set.

Level by status:
    5xx → ERROR, 4xx → WARNING, everything else → INFO

Not logged: request bodies, Authorization headers, file contents.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from mhike.middleware.request_id import request_id_var

logger = logging.getLogger("mhike.access")

# Probed every few seconds by container health checks
QUIET_PATHS = frozenset({"/api/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        content_type = request.headers.get("content-type", "")
        upload_note = ""
        if content_type.startswith("multipart/form-data"):
            upload_note = f" multipart={request.headers.get('content-length', '?')}B"

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s%s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            upload_note,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
