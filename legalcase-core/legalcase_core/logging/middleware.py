"""
Request Logging Middleware
==========================
ASGI middleware binding request and user IDs to the logging context and
logging one line per request and response.

Usage:
    from legalcase_core.logging.middleware import RequestLoggingMiddleware

    app.add_middleware(RequestLoggingMiddleware)
"""

import time
import uuid

import structlog

from .structured import request_id_var, user_id_var

REQUEST_ID_HEADER = b"x-request-id"
USER_ID_HEADER = b"x-user-id"


class RequestLoggingMiddleware:
    """Pure ASGI middleware; the request ID is echoed in X-Request-ID."""

    def __init__(self, app):
        self.app = app
        self.logger = structlog.get_logger("http")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        req_id = headers.get(REQUEST_ID_HEADER, b"").decode() or str(uuid.uuid4())[:8]
        request_token = request_id_var.set(req_id)
        user_token = user_id_var.set(headers.get(USER_ID_HEADER, b"").decode())

        method = scope.get("method", "")
        path = scope.get("path", "")
        start_time = time.perf_counter()
        status_code = 500

        self.logger.info("http_request", method=method, path=path, request_id=req_id)

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                message.setdefault("headers", [])
                message["headers"] = list(message["headers"]) + [(REQUEST_ID_HEADER, req_id.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            log = self.logger.info if status_code < 400 else self.logger.warning if status_code < 500 else self.logger.error
            log(
                "http_response",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
                request_id=req_id,
            )
            request_id_var.reset(request_token)
            user_id_var.reset(user_token)
