"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 校验策略加载 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from fieldops.core.config import get_attachments_dir, get_db_path, load_field_event_policy
from fieldops.core.store import create_store_group

from .exception_handlers import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import (
    activity,
    attachments,
    comments,
    field_events,
    health,
    payments,
    reports,
    tasks,
)

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与策略，关闭时清理连接"""
    db_path = get_db_path()
    attachments_dir = get_attachments_dir()
    store_group = await create_store_group(db_path, attachments_dir)
    app.state.store_group = store_group

    policy = load_field_event_policy()
    app.state.policy = policy
    log.info(
        "gateway_started",
        db_path=db_path,
        attachments_dir=str(attachments_dir),
        distance_warning_m=policy.distance_warning_m,
        accuracy_warning_m=policy.accuracy_warning_m,
        payment_mismatch_ratio=str(policy.payment_mismatch_ratio),
    )

    yield

    # 关闭：清理数据库连接
    if getattr(app.state, "store_group", None):
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="fieldops Gateway",
        version="0.1.0",
        description="现场服务任务生命周期 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 在最外层）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    register_exception_handlers(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(field_events.router, tags=["field-events"])
    app.include_router(payments.router, tags=["payments"])
    app.include_router(comments.router, tags=["comments"])
    app.include_router(attachments.router, tags=["attachments"])
    app.include_router(activity.router, tags=["activity"])
    app.include_router(reports.router, tags=["reports"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
