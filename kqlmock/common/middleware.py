"""
Request tracking middleware.

Every response carries an X-Request-ID header, echoed from the request
when the client sent one. One access log line is written per request.
"""

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from kqlmock.common.logging_config import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Correlates the log lines of one HTTP request and logs its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        route = f"{request.method} {request.url.path}"
        fields = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            fields.update(duration_ms=_elapsed_ms(started), error_type=type(e).__name__)
            logger.exception(f"{route} failed", extra={"extra_fields": fields})
            clear_request_id()
            raise

        fields.update(duration_ms=_elapsed_ms(started), status_code=response.status_code)
        response.headers[REQUEST_ID_HEADER] = request_id

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"{route} {response.status_code}", extra={"extra_fields": fields})
        clear_request_id()

        return response
