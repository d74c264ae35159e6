"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、附件目录、磁盘空间。
"""

import shutil

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from fieldops.core.store.sqlite_init import verify_wal_mode

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: 是否运行在 WAL 模式
    3. attachments_dir: 附件目录可访问性
    4. disk_space_mb: 磁盘剩余空间
    """
    checks = {}
    all_ok = True
    store_group = getattr(request.app.state, "store_group", None)

    # 1. SQLite 连通性
    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        checks["sqlite"] = f"error: {e}"
        all_ok = False

    # 2. WAL 模式
    try:
        checks["wal_mode"] = "ok" if await verify_wal_mode(store_group.conn) else "disabled"
    except Exception as e:
        checks["wal_mode"] = f"error: {e}"
        all_ok = False

    # 3. 附件目录
    attachments_dir = None
    try:
        attachments_dir = store_group.attachment_storage.attachments_dir
        if attachments_dir.exists() and attachments_dir.is_dir():
            checks["attachments_dir"] = "ok"
        else:
            checks["attachments_dir"] = "error: directory does not exist"
            all_ok = False
    except Exception as e:
        checks["attachments_dir"] = f"error: {e}"
        all_ok = False

    # 4. 磁盘空间
    try:
        disk_usage = shutil.disk_usage(attachments_dir or "/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError as e:
        log.warning("disk_usage_check_failed", error=str(e))
        checks["disk_space_mb"] = 0
        all_ok = False

    if not all_ok:
        log.warning("readiness_check_failed", checks=checks)

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
