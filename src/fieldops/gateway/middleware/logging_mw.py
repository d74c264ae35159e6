"""LoggingMiddleware -- 请求级日志

request_id 优先沿用调用方传入的 X-Request-ID（仅接受安全字符），否则生成 ULID。
请求上下文（request_id / method / path / user_id / idempotency_key）绑定到
structlog contextvars，服务层日志自动携带。
"""

import re
import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

from fieldops.core.exceptions import AuthenticationError
from fieldops.gateway.deps import actor_from_token

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def resolve_request_id(incoming: str | None) -> str:
    """沿用合法的上游 request_id，否则生成新的"""
    if incoming and _REQUEST_ID_RE.match(incoming):
        return incoming
    return str(ULID())


def _user_id_from(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    try:
        return actor_from_token(authorization.removeprefix("Bearer ").strip()).user_id
    except AuthenticationError:
        # 鉴权失败由路由依赖返回 401，这里只是不绑定 user_id
        return None


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        start_time = time.monotonic()

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        user_id = _user_id_from(request.headers.get("Authorization"))
        if user_id:
            context["user_id"] = user_id
        idempotency_key = request.headers.get("Idempotency-Key")
        if idempotency_key:
            context["idempotency_key"] = idempotency_key
        structlog.contextvars.bind_contextvars(**context)

        log = structlog.get_logger()
        await log.ainfo("request_started")

        try:
            response = await call_next(request)
        except Exception:
            await log.aexception(
                "request_failed",
                elapsed_ms=int((time.monotonic() - start_time) * 1000),
            )
            raise

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        if response.status_code >= 500:
            await log.awarning(
                "request_completed", status_code=response.status_code, elapsed_ms=elapsed_ms
            )
        else:
            await log.ainfo(
                "request_completed", status_code=response.status_code, elapsed_ms=elapsed_ms
            )

        response.headers["X-Request-ID"] = request_id
        return response
