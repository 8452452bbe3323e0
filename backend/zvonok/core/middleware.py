"""
Per-request context: request id, timing, access log and a last-resort 500.
"""
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from zvonok.core.logging import (
    api_logger,
    elapsed_ms,
    generate_request_id,
    request_id_var,
    request_start_var,
)

REQUEST_ID_HEADER = 'X-Request-ID'

# Probes are polled constantly; keep them out of the access log
QUIET_PATHS = ('/health', '/healthz', '/readyz')


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the context, echo it back and log the outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id
        id_token = request_id_var.set(request_id)
        start_token = request_start_var.set(time.time())
        quiet = request.url.path.endswith(QUIET_PATHS)
        label = f"{request.method} {request.url.path}"

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                api_logger.error(
                    f"{label} -> 500 (unhandled)",
                    error=e,
                    duration_ms=elapsed_ms(request_start_var.get()),
                )
                return JSONResponse(
                    status_code=500,
                    content={'detail': 'Internal server error', 'request_id': request_id},
                    headers={REQUEST_ID_HEADER: request_id},
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            if not quiet:
                log = api_logger.info if response.status_code < 400 else api_logger.warning
                log(
                    f"{label} -> {response.status_code}",
                    status=response.status_code,
                    duration_ms=elapsed_ms(request_start_var.get()),
                )
            return response
        finally:
            request_start_var.reset(start_token)
            request_id_var.reset(id_token)
