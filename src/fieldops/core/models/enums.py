"""枚举定义

包含 TaskStatus 状态机、ActivityAction、UserRole 枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机：PREPARING -> READY -> IN_PROGRESS -> COMPLETED"""

    PREPARING = "PREPARING"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# 合法状态流转（只能前进一步，不允许跳跃或回退）
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PREPARING: {TaskStatus.READY},
    TaskStatus.READY: {TaskStatus.IN_PROGRESS},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED},
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {TaskStatus.COMPLETED}


class ActivityAction(StrEnum):
    """Activity 动作类型（封闭集合，写入时拒绝未知值）"""

    TASK_CREATED = "TASK_CREATED"
    TASK_STATUS_UPDATED = "TASK_STATUS_UPDATED"
    TASK_ASSIGNEES_UPDATED = "TASK_ASSIGNEES_UPDATED"
    TASK_CHECKED_IN = "TASK_CHECKED_IN"
    TASK_CHECKED_OUT = "TASK_CHECKED_OUT"
    PAYMENT_COLLECTED = "PAYMENT_COLLECTED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    TASK_EXPECTED_REVENUE_UPDATED = "TASK_EXPECTED_REVENUE_UPDATED"
    ATTACHMENT_DELETED = "ATTACHMENT_DELETED"
    TASK_ATTACHMENTS_UPLOADED = "TASK_ATTACHMENTS_UPLOADED"
    TASK_COMMENTED = "TASK_COMMENTED"


class UserRole(StrEnum):
    """操作者角色"""

    ADMIN = "admin"
    WORKER = "worker"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法（不考虑角色）

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
