"""TaskStateMachine -- 任务状态流转

按 (角色, 当前状态) 查表得到允许的流转；表在导入时做完备性校验，
任何未覆盖的 (角色, 状态) 组合都会导致启动失败，而不是静默放行。

流转成功时：CAS 更新 tasks.status + 追加一条 TASK_STATUS_UPDATED。
两者都在调用方的 unit of work 内执行，失败时不留下任何写入。
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from .activity_log import ActivityLog
from .exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    TaskStatusConflictError,
)
from .models.activity import task_topic
from .models.actor import Actor
from .models.enums import (
    TERMINAL_STATES,
    ActivityAction,
    TaskStatus,
    UserRole,
    validate_transition,
)
from .models.payloads import LocationFix, TaskStatusUpdatedPayload
from .models.task import Task
from .store.protocols import TaskStore

log = structlog.get_logger()


@dataclass(frozen=True)
class AllowedTransition:
    """某角色在某状态下可执行的流转"""

    target: TaskStatus
    label: str
    requires_assignment: bool = False
    requires_location_fix: bool = False


_ADVANCE_BY_ASSIGNEE = {
    TaskStatus.READY: AllowedTransition(
        target=TaskStatus.IN_PROGRESS,
        label="check-in",
        requires_assignment=True,
        requires_location_fix=True,
    ),
    TaskStatus.IN_PROGRESS: AllowedTransition(
        target=TaskStatus.COMPLETED,
        label="check-out",
        requires_assignment=True,
        requires_location_fix=True,
    ),
}

# (角色, 当前状态) -> 允许的流转；None 表示该角色在该状态下无可执行流转
TRANSITION_TABLE: dict[tuple[UserRole, TaskStatus], AllowedTransition | None] = {
    (UserRole.ADMIN, TaskStatus.PREPARING): AllowedTransition(
        target=TaskStatus.READY,
        label="mark-ready",
    ),
    # admin 只能以被分配的执行人身份、携带定位证据推进（即通过 check-in/check-out）
    (UserRole.ADMIN, TaskStatus.READY): _ADVANCE_BY_ASSIGNEE[TaskStatus.READY],
    (UserRole.ADMIN, TaskStatus.IN_PROGRESS): _ADVANCE_BY_ASSIGNEE[TaskStatus.IN_PROGRESS],
    (UserRole.ADMIN, TaskStatus.COMPLETED): None,
    (UserRole.WORKER, TaskStatus.PREPARING): None,
    (UserRole.WORKER, TaskStatus.READY): _ADVANCE_BY_ASSIGNEE[TaskStatus.READY],
    (UserRole.WORKER, TaskStatus.IN_PROGRESS): _ADVANCE_BY_ASSIGNEE[TaskStatus.IN_PROGRESS],
    (UserRole.WORKER, TaskStatus.COMPLETED): None,
}


def _validate_transition_table(
    table: dict[tuple[UserRole, TaskStatus], AllowedTransition | None],
) -> None:
    """完备性 + 一致性校验：覆盖所有组合，且每条流转都在 VALID_TRANSITIONS 内"""
    for role in UserRole:
        for status in TaskStatus:
            if (role, status) not in table:
                raise RuntimeError(f"transition table missing entry for ({role}, {status})")
            allowed = table[(role, status)]
            if allowed is None:
                continue
            if status in TERMINAL_STATES:
                raise RuntimeError(f"terminal status {status} cannot have transitions")
            if not validate_transition(status, allowed.target):
                raise RuntimeError(
                    f"transition {status} -> {allowed.target} for {role} is not a valid step"
                )


_validate_transition_table(TRANSITION_TABLE)


def allowed_transitions(actor: Actor, status: TaskStatus) -> list[AllowedTransition]:
    """列出操作者各角色在该状态下可执行的流转（去重）"""
    result: list[AllowedTransition] = []
    for role in actor.roles:
        allowed = TRANSITION_TABLE[(role, status)]
        if allowed is not None and allowed not in result:
            result.append(allowed)
    return result


class TaskStateMachine:
    """任务状态机 -- tasks.status 的唯一写入方"""

    def __init__(self, task_store: TaskStore, activity_log: ActivityLog) -> None:
        self._task_store = task_store
        self._activity_log = activity_log

    def check(
        self,
        task: Task,
        actor: Actor,
        target_status: TaskStatus,
        location_fix: LocationFix | None = None,
    ) -> AllowedTransition:
        """只校验不写入

        Raises:
            InvalidTransitionError: 目标状态不是当前状态的下一步
            ForbiddenError: 角色 / 分配 / 定位证据不满足
        """
        current = task.status
        if current in TERMINAL_STATES or not validate_transition(current, target_status):
            raise InvalidTransitionError(
                f"Cannot transition task {task.task_id} from {current} to {target_status}"
            )

        candidates = [
            allowed
            for allowed in allowed_transitions(actor, current)
            if allowed.target == target_status
        ]
        if not candidates:
            raise ForbiddenError(
                f"Your role does not allow moving task {task.task_id} "
                f"from {current} to {target_status}"
            )

        allowed = candidates[0]
        if allowed.requires_assignment and not task.is_assigned(actor.user_id):
            raise ForbiddenError(f"You are not assigned to task {task.task_id}")
        if allowed.requires_location_fix and location_fix is None:
            raise ForbiddenError(
                f"Moving task {task.task_id} to {target_status} requires a {allowed.label} "
                "with a location fix"
            )
        return allowed

    async def transition(
        self,
        task: Task,
        actor: Actor,
        target_status: TaskStatus,
        *,
        location_fix: LocationFix | None = None,
        now: datetime | None = None,
    ) -> Task:
        """执行状态流转（需在 unit of work 内调用）

        Returns:
            更新状态后的 Task

        Raises:
            InvalidTransitionError / ForbiddenError: 校验失败，未写入任何数据
            TaskStatusConflictError: CAS 失败（并发流转落败），未写入任何数据
        """
        self.check(task, actor, target_status, location_fix)
        now = now or datetime.now(UTC)

        swapped = await self._task_store.compare_and_set_status(
            task.task_id,
            expected_status=task.status,
            new_status=target_status,
            updated_at=now,
        )
        if not swapped:
            log.info(
                "task_status_cas_lost",
                task_id=task.task_id,
                expected_status=task.status.value,
                target_status=target_status.value,
            )
            raise TaskStatusConflictError(task.task_id, task.status.value)

        await self._activity_log.record(
            task_topic(task.task_id),
            ActivityAction.TASK_STATUS_UPDATED,
            TaskStatusUpdatedPayload(old_status=task.status, new_status=target_status),
            user_id=actor.user_id,
            created_at=now,
        )
        log.info(
            "task_status_transitioned",
            task_id=task.task_id,
            old_status=task.status.value,
            new_status=target_status.value,
            user_id=actor.user_id,
        )
        return task.model_copy(update={"status": target_status, "updated_at": now})
