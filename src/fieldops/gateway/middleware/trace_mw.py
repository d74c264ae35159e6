"""TraceMiddleware -- 任务级追踪

从 /v1/task/{task_id}/... 路径中提取 task_id 并绑定到日志上下文，
使同一任务的 check-in / check-out / 收款日志可以串联检索。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_task_id(path: str) -> int | None:
    """从路径中提取整数 task_id，不匹配时返回 None"""
    parts = [part for part in path.split("/") if part]
    for i, part in enumerate(parts):
        if part == "task" and i + 1 < len(parts) and parts[i + 1].isdigit():
            return int(parts[i + 1])
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务操作绑定 task_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id is not None:
            structlog.contextvars.bind_contextvars(task_id=task_id)

        return await call_next(request)
