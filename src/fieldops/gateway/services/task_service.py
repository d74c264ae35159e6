"""TaskService -- admin 任务管理与查询

创建任务、标记就绪、调整执行人和预期收入。
每个写操作与对应的 Activity 在同一个 unit of work 内提交。
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog

from fieldops.core.activity_log import ActivityLog
from fieldops.core.exceptions import InvalidStateError
from fieldops.core.models import (
    TERMINAL_STATES,
    ActivityAction,
    Actor,
    Task,
    TaskAssigneesUpdatedPayload,
    TaskCreate,
    TaskCreatedPayload,
    TaskExpectedRevenueUpdatedPayload,
    TaskStatus,
    task_topic,
)
from fieldops.core.state_machine import TaskStateMachine
from fieldops.core.store import StoreGroup

from .access import load_visible_task, require_admin

log = structlog.get_logger()


def _dedupe(ids: list[str]) -> list[str]:
    """去除空白与重复 ID，保持原有顺序"""
    seen: dict[str, None] = {}
    for raw in ids:
        value = raw.strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


class TaskService:
    """任务业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._activity_log = ActivityLog(store_group.activity_store)
        self._state_machine = TaskStateMachine(store_group.task_store, self._activity_log)

    async def create_task(self, actor: Actor, data: TaskCreate) -> Task:
        """创建任务（PREPARING）并记录 TASK_CREATED"""
        require_admin(actor, "create tasks")
        now = datetime.now(UTC)
        assignee_ids = _dedupe(data.assignee_ids)
        task = Task(
            task_id=0,
            created_at=now,
            updated_at=now,
            status=TaskStatus.PREPARING,
            title=data.title.strip(),
            description=data.description,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            geo_location=data.geo_location,
            expected_revenue=data.expected_revenue,
            assignee_ids=assignee_ids,
        )

        async with self._stores.transaction():
            task_id = await self._stores.task_store.create_task(task)
            task = task.model_copy(update={"task_id": task_id})
            await self._activity_log.record(
                task_topic(task_id),
                ActivityAction.TASK_CREATED,
                TaskCreatedPayload(
                    title=task.title,
                    assignee_ids=assignee_ids,
                    has_location=task.geo_location is not None,
                    expected_revenue=task.expected_revenue,
                ),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info("task_created", task_id=task_id, assignee_count=len(assignee_ids))
        return task

    async def get_task(self, task_id: int, actor: Actor) -> Task:
        return await load_visible_task(self._stores.task_store, task_id, actor)

    async def list_tasks(self, actor: Actor, status: TaskStatus | None = None) -> list[Task]:
        """admin 返回全部任务，其他角色只返回被分配的任务"""
        assignee_id = None if actor.is_admin else actor.user_id
        return await self._stores.task_store.list_tasks(
            status=status.value if status else None,
            assignee_id=assignee_id,
        )

    async def mark_ready(self, task_id: int, actor: Actor) -> Task:
        """PREPARING -> READY（仅 admin）"""
        task = await load_visible_task(self._stores.task_store, task_id, actor)
        async with self._stores.transaction():
            return await self._state_machine.transition(task, actor, TaskStatus.READY)

    async def update_assignees(
        self,
        task_id: int,
        actor: Actor,
        assignee_ids: list[str],
    ) -> Task:
        """整体替换执行人列表，记录 TASK_ASSIGNEES_UPDATED"""
        require_admin(actor, "change assignees")
        task = await load_visible_task(self._stores.task_store, task_id, actor)
        if task.status in TERMINAL_STATES:
            raise InvalidStateError(f"Task {task_id} is {task.status}; assignees are frozen")

        new_ids = _dedupe(assignee_ids)
        if new_ids == task.assignee_ids:
            return task

        now = datetime.now(UTC)
        async with self._stores.transaction():
            await self._stores.task_store.update_assignees(task_id, new_ids, now)
            await self._activity_log.record(
                task_topic(task_id),
                ActivityAction.TASK_ASSIGNEES_UPDATED,
                TaskAssigneesUpdatedPayload(
                    old_assignee_ids=task.assignee_ids,
                    new_assignee_ids=new_ids,
                ),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info("task_assignees_updated", task_id=task_id, assignee_count=len(new_ids))
        return task.model_copy(update={"assignee_ids": new_ids, "updated_at": now})

    async def set_expected_revenue(
        self,
        task_id: int,
        actor: Actor,
        expected_revenue: Decimal | None,
    ) -> Task:
        """设置或清除预期收入，记录 TASK_EXPECTED_REVENUE_UPDATED"""
        require_admin(actor, "change expected revenue")
        task = await load_visible_task(self._stores.task_store, task_id, actor)
        if expected_revenue == task.expected_revenue:
            return task

        now = datetime.now(UTC)
        async with self._stores.transaction():
            await self._stores.task_store.update_expected_revenue(task_id, expected_revenue, now)
            await self._activity_log.record(
                task_topic(task_id),
                ActivityAction.TASK_EXPECTED_REVENUE_UPDATED,
                TaskExpectedRevenueUpdatedPayload(
                    old_expected_revenue=task.expected_revenue,
                    new_expected_revenue=expected_revenue,
                ),
                user_id=actor.user_id,
                created_at=now,
            )

        return task.model_copy(update={"expected_revenue": expected_revenue, "updated_at": now})
