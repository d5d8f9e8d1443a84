"""Access log for the storefront API.

Every request gets a `req_<hex>` id on request.state (handlers copy it into
ApiResponse) and in the X-Request-ID header. One line is logged per request:

    INFO [POST] /api/v1/payments/bkash/callback 200 41ms 203.0.113.9 req_a1b2c3d4e5f6

Server errors log at WARNING so a failing gateway callback stands out. Query
strings are never logged: callback URLs carry the order id and nonce.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("sf.access")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s %d %.0fms %s %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.client.host if request.client else "-",
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
