import logging
import time
import uuid

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from lifelog.core.logging import request_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id, exposes it to the log context and logs timing.

    The id is taken from the incoming header when present so callers can
    correlate a retried event submission with the original attempt.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_context.set(
            {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
            }
        )
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Unhandled exception during {request.method} {request.url.path} "
                f"({self._elapsed_ms(start_time)}ms)",
                exc_info=True,
            )
            raise
        finally:
            request_context.reset(token)

        response.headers[self.header_name] = request_id
        self._log_request(request, response, start_time)
        return response

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.time() - start_time) * 1000, 2)

    def _log_request(
        self, request: Request, response: Response, start_time: float
    ) -> None:
        log_dict = {
            "request_id": request.state.request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "process_time_ms": self._elapsed_ms(start_time),
        }

        if response.status_code >= 500:
            logger.error(f"Request failed: {log_dict}")
        elif response.status_code >= 400:
            logger.warning(f"Request error: {log_dict}")
        else:
            logger.info(f"Request completed: {log_dict}")


def register_middlewares(app: FastAPI) -> None:
    """Register all middlewares with the FastAPI app."""
    app.add_middleware(RequestContextMiddleware, header_name="X-Request-ID")
