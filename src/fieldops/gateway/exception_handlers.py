"""异常处理器注册

register_exception_handlers(app) 将领域异常和框架异常统一映射为
{"error": {"code", "message"}} 结构的 JSON 响应。
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fieldops.core.exceptions import FieldOpsError

log = structlog.get_logger()


def error_body(code: str, message: str, **extra) -> dict:
    error = {"code": code, "message": message}
    error.update(extra)
    return {"error": error}


async def _fieldops_error_handler(request: Request, exc: FieldOpsError) -> JSONResponse:
    """领域异常 -> 对应 HTTP 状态码"""
    await log.ainfo(
        "request_rejected",
        code=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求参数校验失败 -> 422"""
    details = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body("VALIDATION_ERROR", "Request validation failed", details=details),
    )


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail)),
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """未预期异常 -> 500，详情只写日志"""
    await log.aexception("unhandled_exception", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """在 app 上注册全部异常处理器（创建 app 后调用一次）"""
    app.add_exception_handler(FieldOpsError, _fieldops_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
