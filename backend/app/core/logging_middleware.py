"""Request logging middleware."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("tally.requests")

# Longest error body included in a log line
MAX_DETAIL_CHARS = 300


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request.

    Error responses also log their body, so validation details and failed
    fills show up in the server log.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000

        target = request.url.path
        if request.url.query:
            target += f"?{request.url.query}"

        if response.status_code < 400 or not hasattr(response, "body_iterator"):
            logger.info(
                "%s %s %d (%.0fms)",
                request.method,
                target,
                response.status_code,
                elapsed_ms,
            )
            return response

        # The body stream can only be read once, so rebuild the response.
        chunks = [
            chunk.encode("utf-8") if isinstance(chunk, str) else chunk
            async for chunk in response.body_iterator
        ]
        body = b"".join(chunks)
        detail = body.decode("utf-8", errors="replace")[:MAX_DETAIL_CHARS]

        log = logger.warning if response.status_code < 500 else logger.error
        log(
            "%s %s %d (%.0fms): %s",
            request.method,
            target,
            response.status_code,
            elapsed_ms,
            detail,
        )
        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )
