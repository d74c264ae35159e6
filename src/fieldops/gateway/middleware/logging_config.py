"""structlog 配置模块

日志渲染由 FIELDOPS_LOG_FORMAT 控制（dev / json），客户电话与 bearer token
在渲染前脱敏。Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，未启用时只输出本地日志。
"""

import logging
import os
import re

import structlog
from fastapi import FastAPI

SERVICE_NAME = "fieldops-gateway"

# 事件字段中需要脱敏的键
_REDACTED_KEYS = frozenset({"authorization", "customer_phone", "token"})
_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+")

# 第三方 logger 的级别下限；uvicorn.access 与 LoggingMiddleware 的请求日志重复
_QUIET_LOGGERS = {
    "aiosqlite": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "multipart": logging.WARNING,
}


def redact_sensitive(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """脱敏客户电话与身份凭证"""
    for key in _REDACTED_KEYS & event_dict.keys():
        event_dict[key] = "***"
    for key, value in event_dict.items():
        if isinstance(value, str) and "Bearer" in value:
            event_dict[key] = _BEARER_RE.sub("Bearer ***", value)
    return event_dict


def add_service_name(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging() -> None:
    """初始化 structlog 与标准库 logging

    FIELDOPS_LOG_FORMAT:
    - "json": 单行 JSON（生产环境采集）
    - "dev" (默认): 终端彩色输出
    FIELDOPS_LOG_LEVEL: 根 logger 级别，默认 INFO
    """
    log_format = os.environ.get("FIELDOPS_LOG_FORMAT", "dev")
    log_level = os.environ.get("FIELDOPS_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_name,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # uvicorn / aiosqlite 等标准库日志走同一条渲染链
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def setup_logfire(app: FastAPI) -> bool:
    """按需为 app 启用 Logfire APM

    LOGFIRE_SEND_TO_LOGFIRE="true" 时启用（需要 LOGFIRE_TOKEN），
    默认 "false" 仅输出本地日志。返回是否完成埋点。
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name=SERVICE_NAME)
        logfire.instrument_fastapi(app)
    except Exception as e:
        # APM 不可用时继续以本地日志运行
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
        )
        return False
    return True
