"""员工报表投影

按时间段统计每位员工的出勤天数、完成任务数和收入分成。
- 出勤天数：TASK_CHECKED_IN 在报表时区下的不同本地日期数
- 完成任务：COMPLETED 且 completed_at 落在时间段内、本人在执行人列表中
- 收入：expected_revenue 在全部执行人间平均分配

纯函数，数据由调用方从 store 读取后传入。
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from .exceptions import ValidationError
from .models.activity import Activity
from .models.enums import ActivityAction, TaskStatus
from .models.task import Task

MAX_REPORT_DAYS = 365

_CENT = Decimal("0.01")

SortField = Literal["revenue", "tasks", "name"]
SortOrder = Literal["asc", "desc"]


class ReportPeriod(BaseModel):
    """报表时间段（起止日期均包含）"""

    start_date: date
    end_date: date
    timezone: str


class EmployeeMetrics(BaseModel):
    days_worked: int = 0
    tasks_completed: int = 0
    total_revenue: Decimal = Decimal("0")


class CompletedTaskLine(BaseModel):
    """报表中的单个已完成任务"""

    task_id: int
    title: str
    completed_at: datetime | None
    revenue: Decimal
    revenue_share: Decimal
    worker_count: int


class EmployeeReport(BaseModel):
    user_id: str
    period: ReportPeriod
    metrics: EmployeeMetrics
    tasks: list[CompletedTaskLine] = Field(default_factory=list)


class EmployeeSummaryRow(BaseModel):
    user_id: str
    metrics: EmployeeMetrics
    has_activity: bool


class SummaryTotals(BaseModel):
    total_employees: int = 0
    active_employees: int = 0
    total_revenue: Decimal = Decimal("0")
    total_tasks: int = 0


class EmployeesSummary(BaseModel):
    period: ReportPeriod
    employees: list[EmployeeSummaryRow] = Field(default_factory=list)
    summary: SummaryTotals = Field(default_factory=SummaryTotals)


def resolve_timezone(name: str) -> ZoneInfo:
    """解析 IANA 时区名

    Raises:
        ValidationError: 未知时区
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name}") from e


def make_period(start_date: date, end_date: date, timezone: str) -> ReportPeriod:
    """校验时间段：end_date >= start_date，跨度不超过 365 天，时区合法"""
    resolve_timezone(timezone)
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date")
    if (end_date - start_date).days > MAX_REPORT_DAYS:
        raise ValidationError(f"Report period must not exceed {MAX_REPORT_DAYS} days")
    return ReportPeriod(start_date=start_date, end_date=end_date, timezone=timezone)


def period_bounds(period: ReportPeriod) -> tuple[datetime, datetime]:
    """时间段在报表时区下的 [起始日 00:00, 结束日次日 00:00)"""
    tz = resolve_timezone(period.timezone)
    start = datetime.combine(period.start_date, time.min, tzinfo=tz)
    end = datetime.combine(period.end_date + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def _in_period(moment: datetime | None, bounds: tuple[datetime, datetime]) -> bool:
    return moment is not None and bounds[0] <= moment < bounds[1]


def revenue_share(task: Task) -> Decimal:
    """单个执行人的收入分成，保留两位小数"""
    if task.expected_revenue is None or not task.assignee_ids:
        return Decimal("0.00")
    share = task.expected_revenue / len(task.assignee_ids)
    return share.quantize(_CENT, rounding=ROUND_HALF_UP)


def worked_days(
    check_ins: Iterable[Activity], user_id: str, period: ReportPeriod
) -> set[date]:
    """user_id 在时间段内 check-in 的本地日期集合"""
    tz = resolve_timezone(period.timezone)
    bounds = period_bounds(period)
    return {
        activity.created_at.astimezone(tz).date()
        for activity in check_ins
        if activity.action == ActivityAction.TASK_CHECKED_IN
        and activity.user_id == user_id
        and _in_period(activity.created_at, bounds)
    }


def completed_tasks_in_period(tasks: Iterable[Task], period: ReportPeriod) -> list[Task]:
    """时间段内完成的任务，按 completed_at 倒序"""
    bounds = period_bounds(period)
    completed = [
        task
        for task in tasks
        if task.status == TaskStatus.COMPLETED and _in_period(task.completed_at, bounds)
    ]
    completed.sort(key=lambda task: (task.completed_at, task.task_id), reverse=True)
    return completed


def _metrics_for(
    user_id: str,
    period: ReportPeriod,
    check_ins: list[Activity],
    completed: list[Task],
) -> tuple[EmployeeMetrics, list[Task]]:
    own_tasks = [task for task in completed if task.is_assigned(user_id)]
    metrics = EmployeeMetrics(
        days_worked=len(worked_days(check_ins, user_id, period)),
        tasks_completed=len(own_tasks),
        total_revenue=sum((revenue_share(task) for task in own_tasks), Decimal("0.00")),
    )
    return metrics, own_tasks


def build_employee_report(
    user_id: str,
    period: ReportPeriod,
    check_ins: Iterable[Activity],
    tasks: Iterable[Task],
) -> EmployeeReport:
    """单个员工的报表（指标 + 已完成任务明细）"""
    completed = completed_tasks_in_period(tasks, period)
    metrics, own_tasks = _metrics_for(user_id, period, list(check_ins), completed)
    return EmployeeReport(
        user_id=user_id,
        period=period,
        metrics=metrics,
        tasks=[
            CompletedTaskLine(
                task_id=task.task_id,
                title=task.title,
                completed_at=task.completed_at,
                revenue=task.expected_revenue or Decimal("0"),
                revenue_share=revenue_share(task),
                worker_count=len(task.assignee_ids),
            )
            for task in own_tasks
        ],
    )


def _sort_key(sort: SortField):
    if sort == "tasks":
        return lambda row: (row.metrics.tasks_completed, row.user_id)
    if sort == "name":
        return lambda row: row.user_id
    return lambda row: (row.metrics.total_revenue, row.user_id)


def build_employees_summary(
    user_ids: Iterable[str],
    period: ReportPeriod,
    check_ins: Iterable[Activity],
    tasks: Iterable[Task],
    sort: SortField = "revenue",
    order: SortOrder = "desc",
) -> EmployeesSummary:
    """全部员工的汇总报表

    total_tasks 按任务计数，多人任务只计一次。
    """
    check_ins = list(check_ins)
    completed = completed_tasks_in_period(tasks, period)
    members = set(user_ids)

    rows: list[EmployeeSummaryRow] = []
    for user_id in sorted(members):
        metrics, _ = _metrics_for(user_id, period, check_ins, completed)
        rows.append(
            EmployeeSummaryRow(
                user_id=user_id,
                metrics=metrics,
                has_activity=metrics.tasks_completed > 0 or metrics.days_worked > 0,
            )
        )
    rows.sort(key=_sort_key(sort), reverse=order == "desc")

    return EmployeesSummary(
        period=period,
        employees=rows,
        summary=SummaryTotals(
            total_employees=len(rows),
            active_employees=sum(1 for row in rows if row.has_activity),
            total_revenue=sum((row.metrics.total_revenue for row in rows), Decimal("0.00")),
            total_tasks=sum(
                1 for task in completed if members.intersection(task.assignee_ids)
            ),
        ),
    )
