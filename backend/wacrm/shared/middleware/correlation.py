"""
Request Middleware

Correlation ID: every request gets an ID (or keeps the caller's X-Request-ID)
that is attached to all log lines and echoed back in the response headers.
Provider webhook deliveries get a `wh-` prefix so they stand out in the logs.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from wacrm.shared.core.logging import set_correlation_id

WEBHOOK_PATHS = ("/whatsapp", "/api/whatsapp/webhook")


class CorrelationIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming_id = request.headers.get("X-Request-ID")
        prefix = "wh" if request.url.path.rstrip("/") in WEBHOOK_PATHS else "req"

        correlation_id = set_correlation_id(incoming_id, prefix=prefix)

        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id

        return response
