import time
import uuid
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from backend.app.core.logging import actor_id_ctx, correlation_id_ctx, event_id_ctx

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation id and a per-request event id for every request.

    The correlation id is taken from the caller when present so a client can
    tie its own logs to ours; it is also stamped as ``trace_id`` on every
    audit event written while the request runs.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        event_id = str(uuid.uuid4())

        tokens = [
            (correlation_id_ctx, correlation_id_ctx.set(correlation_id)),
            (event_id_ctx, event_id_ctx.set(event_id)),
            (actor_id_ctx, actor_id_ctx.set(None)),
        ]
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={"extra_data": self._request_data(request, 500, start_time, error=str(e))},
                exc_info=True,
            )
            raise
        else:
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={"extra_data": self._request_data(request, response.status_code, start_time)},
            )
            response.headers[CORRELATION_HEADER] = correlation_id
            response.headers["X-Event-ID"] = event_id
            return response
        finally:
            for ctx, token in reversed(tokens):
                ctx.reset(token)

    @staticmethod
    def _request_data(request: Request, status_code: int, start_time: float, **extra) -> dict:
        data = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
            "client_ip": request.client.host if request.client else None,
        }
        data.update(extra)
        return data
