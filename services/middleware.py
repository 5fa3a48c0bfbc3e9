"""FastAPI middleware — request ID + access log (pure ASGI)."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """Tag every HTTP request with an ID and log its outcome.

    A client-supplied ``X-Request-ID`` is reused, otherwise a short UUID is
    generated.  The ID is exposed as ``request.state.request_id`` and echoed
    in the response headers.  On completion one line is logged:
    ``METHOD path → status (ms) [id]``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or uuid.uuid4().hex[:8]
        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id

        status_code = 500
        t0 = time.monotonic()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                response_headers = list(message.get("headers", []))
                response_headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = response_headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            elapsed = (time.monotonic() - t0) * 1000
            logger.info(
                "%s %s → %d (%.0fms) [%s]",
                scope.get("method", ""),
                scope.get("path", ""),
                status_code,
                elapsed,
                request_id,
            )
