"""TraceMiddleware -- 为任务路由绑定 trace_id

/api/tasks/{task_id}[/...] 请求绑定 trace_id = trace-{task_id}，
贯穿该任务规划、执行、生命周期操作的日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 字符串长度
_TASK_ID_LENGTH = 26


def extract_task_id(path: str) -> str | None:
    """从 /api/tasks/{task_id}/... 提取 task_id"""
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == "tasks" and i + 1 < len(parts):
            candidate = parts[i + 1]
            if len(candidate) == _TASK_ID_LENGTH:
                return candidate
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id:
            structlog.contextvars.bind_contextvars(trace_id=f"trace-{task_id}")
        return await call_next(request)
