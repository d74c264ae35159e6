"""Projection 重建模块

activities 是事实来源，tasks.status 只是缓存投影。
按序回放 TASK_STATUS_UPDATED 可以重建每个任务的完整状态历史，
rebuild_statuses 据此重写 tasks.status 列。
"""

import time
from collections.abc import Iterable

import structlog

from .models.activity import Activity
from .models.enums import ActivityAction, TaskStatus
from .store import StoreGroup

log = structlog.get_logger()

TASK_TOPIC_PREFIX = "TASK_"


def replay_status_history(activities: Iterable[Activity]) -> list[TaskStatus]:
    """回放单个任务的状态历史

    历史以 PREPARING 开头（任务创建时的初始状态），
    之后每条 TASK_STATUS_UPDATED 追加一个 new_status。

    Raises:
        ValueError: old_status 与回放到的当前状态不一致（日志与投影脱节）
    """
    history = [TaskStatus.PREPARING]
    for activity in activities:
        if activity.action != ActivityAction.TASK_STATUS_UPDATED:
            continue
        old_status = TaskStatus(activity.payload["old_status"])
        new_status = TaskStatus(activity.payload["new_status"])
        if old_status != history[-1]:
            raise ValueError(
                f"{activity.topic}: activity {activity.activity_id} moves from "
                f"{old_status} but replayed status is {history[-1]}"
            )
        history.append(new_status)
    return history


def apply_activity(statuses: dict[str, TaskStatus], activity: Activity) -> None:
    """将单个 Activity 应用到 topic -> 状态 映射（内存中操作，就地修改）"""
    if activity.action == ActivityAction.TASK_CREATED:
        statuses[activity.topic] = TaskStatus.PREPARING
    elif activity.action == ActivityAction.TASK_STATUS_UPDATED:
        statuses[activity.topic] = TaskStatus(activity.payload["new_status"])


async def rebuild_statuses(stores: StoreGroup) -> int:
    """从 activities 表重建 tasks.status

    流程：
    1. 读取所有 Activity（按 seq 排序）
    2. 在内存中回放，得到每个 topic 的当前状态
    3. 在同一事务内覆盖 tasks.status

    Returns:
        处理的 Activity 总数
    """
    start_time = time.monotonic()

    activities = await stores.activity_store.list_all()
    await log.ainfo("projection_rebuild_started", activity_count=len(activities))

    statuses: dict[str, TaskStatus] = {}
    for activity in activities:
        apply_activity(statuses, activity)

    updated = 0
    async with stores.transaction():
        for topic, status in statuses.items():
            if not topic.startswith(TASK_TOPIC_PREFIX):
                continue
            task_id = int(topic.removeprefix(TASK_TOPIC_PREFIX))
            await stores.task_store.overwrite_status(task_id, status)
            updated += 1

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "projection_rebuild_completed",
        activity_count=len(activities),
        task_count=updated,
        elapsed_ms=elapsed_ms,
    )
    return len(activities)
