"""ReportService -- admin 员工报表

员工集合取所有任务执行人与有 check-in 记录的用户的并集。
"""

from datetime import date

import structlog

from fieldops.core.models import ActivityAction, Actor, TaskStatus
from fieldops.core.reports import (
    EmployeeReport,
    EmployeesSummary,
    SortField,
    SortOrder,
    build_employee_report,
    build_employees_summary,
    make_period,
)
from fieldops.core.store import StoreGroup

from .access import require_admin

log = structlog.get_logger()


class ReportService:
    """报表业务服务（只读）"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def employee_report(
        self,
        actor: Actor,
        user_id: str,
        start_date: date,
        end_date: date,
        timezone: str,
    ) -> EmployeeReport:
        require_admin(actor, "view employee reports")
        period = make_period(start_date, end_date, timezone)
        check_ins = await self._stores.activity_store.list_by_action(
            ActivityAction.TASK_CHECKED_IN, user_id=user_id
        )
        tasks = await self._stores.task_store.list_tasks(
            status=TaskStatus.COMPLETED.value, assignee_id=user_id
        )
        report = build_employee_report(user_id, period, check_ins, tasks)
        log.info(
            "employee_report_generated",
            target_user_id=user_id,
            start_date=str(start_date),
            end_date=str(end_date),
            tasks_completed=report.metrics.tasks_completed,
            days_worked=report.metrics.days_worked,
        )
        return report

    async def employees_summary(
        self,
        actor: Actor,
        start_date: date,
        end_date: date,
        timezone: str,
        sort: SortField = "revenue",
        order: SortOrder = "desc",
    ) -> EmployeesSummary:
        require_admin(actor, "view employee reports")
        period = make_period(start_date, end_date, timezone)
        check_ins = await self._stores.activity_store.list_by_action(
            ActivityAction.TASK_CHECKED_IN
        )
        all_tasks = await self._stores.task_store.list_tasks()

        user_ids = {uid for task in all_tasks for uid in task.assignee_ids}
        user_ids.update(a.user_id for a in check_ins if a.user_id)

        summary = build_employees_summary(
            user_ids, period, check_ins, all_tasks, sort=sort, order=order
        )
        log.info(
            "employees_summary_generated",
            start_date=str(start_date),
            end_date=str(end_date),
            employees=summary.summary.total_employees,
            active_employees=summary.summary.active_employees,
            total_tasks=summary.summary.total_tasks,
        )
        return summary
