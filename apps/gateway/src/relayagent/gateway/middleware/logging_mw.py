"""LoggingMiddleware -- 请求级日志

request_id 取自 X-Request-ID 或新生成的 ULID，绑定到 structlog contextvars 并回写响应头。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

# 探针请求频繁，不记请求日志
_QUIET_PATHS = frozenset({"/health", "/ready"})


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(ULID())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
        )

        log = structlog.get_logger()
        quiet = path in _QUIET_PATHS
        if not quiet:
            await log.ainfo("request_started")

        started = time.monotonic()
        response = await call_next(request)

        if not quiet:
            await log.ainfo(
                "request_completed",
                status_code=response.status_code,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        response.headers["X-Request-ID"] = request_id
        return response
