"""访问控制辅助函数"""

from fieldops.core.exceptions import ForbiddenError, NotFoundError
from fieldops.core.models import Actor, Task
from fieldops.core.store.protocols import TaskStore


def require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise ForbiddenError(f"Only admins can {action}")


def can_view_task(task: Task, actor: Actor) -> bool:
    """admin 可查看全部任务，其他角色只能查看被分配的任务"""
    return actor.is_admin or task.is_assigned(actor.user_id)


async def load_visible_task(task_store: TaskStore, task_id: int, actor: Actor) -> Task:
    """加载任务并校验可见性

    Raises:
        NotFoundError: 任务不存在
        ForbiddenError: 非 admin 且未被分配
    """
    task = await task_store.get_task(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")
    if not can_view_task(task, actor):
        raise ForbiddenError(f"You are not assigned to task {task_id}")
    return task
