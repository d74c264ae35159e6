"""报表路由（admin）

GET /v1/reports/employee/{user_id}: 单个员工的出勤、完成任务与收入分成
GET /v1/reports/summary: 全部员工汇总，支持 sort / order
- 403: 非 admin
- 422: 日期格式错误、end_date 早于 start_date、跨度超过 365 天、未知时区
"""

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query

from fieldops.core.config import REPORT_TIMEZONE
from fieldops.core.models import Actor

from ..deps import get_actor, get_store_group
from ..services.report_service import ReportService

router = APIRouter()


@router.get("/v1/reports/employee/{user_id}")
async def employee_report(
    user_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    timezone: str = Query(default=REPORT_TIMEZONE, description="IANA 时区"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    report = await ReportService(store_group).employee_report(
        actor, user_id, start_date, end_date, timezone
    )
    return report.model_dump(mode="json")


@router.get("/v1/reports/summary")
async def employees_summary(
    start_date: date = Query(...),
    end_date: date = Query(...),
    timezone: str = Query(default=REPORT_TIMEZONE, description="IANA 时区"),
    sort: Literal["revenue", "tasks", "name"] = Query(default="revenue"),
    order: Literal["asc", "desc"] = Query(default="desc"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """员工汇总报表，按任务计数的 total_tasks 中多人任务只计一次"""
    summary = await ReportService(store_group).employees_summary(
        actor, start_date, end_date, timezone, sort=sort, order=order
    )
    return summary.model_dump(mode="json")
