"""Request logging middleware.

Logs every HTTP request with method, path, status code, latency, the
acting principal and a short request ID for correlation. The request_id is
also stored on request.state so handlers can put it in the ApiResponse.

Log format:
    INFO [POST] /api/v1/ledger/accounts/a1/entries -> 200 (23ms) actor=u-17 req_a1b2c3d4
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.lt_gateway.auth.dependencies import ACTOR_HEADER

logger = logging.getLogger("lt.request")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = f"req_{uuid.uuid4().hex[:12]}"

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "[%s] %s -> %d (%.0fms) actor=%s %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.headers.get(ACTOR_HEADER, "-"),
            request.state.request_id,
        )
        return response
