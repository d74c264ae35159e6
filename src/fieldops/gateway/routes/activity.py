"""活动日志路由

GET /v1/activity?topic=TASK_{id}: 按 topic 返回有序日志
- collapse=true: 折叠短时间内的重复动作。折叠只在当前页内进行，
  页首不与上一页末尾比较，因此相邻两页交界处可能出现同一 action
- hide_unimportant=true: 隐藏附件类动作
- order / cursor / limit: 排序方向与续读游标
每条记录附带 attachments_missing，表示引用但已删除的附件数量。
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query

from fieldops.core.activity_log import ActivityLog
from fieldops.core.exceptions import ForbiddenError, ValidationError
from fieldops.core.feed import (
    UNIMPORTANT_ACTIONS,
    project,
    referenced_attachment_ids,
    summarize_attachment_refs,
)
from fieldops.core.models import GENERAL_TOPIC, Activity, Actor

from ..deps import get_actor, get_policy, get_store_group
from ..services.access import load_visible_task

router = APIRouter()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def parse_task_topic(topic: str) -> int | None:
    """TASK_<id> -> id，其他 topic 返回 None"""
    prefix, _, raw_id = topic.partition("_")
    if prefix == "TASK" and raw_id.isdigit():
        return int(raw_id)
    return None


async def _authorize_topic(topic: str, actor: Actor, store_group) -> None:
    if topic == GENERAL_TOPIC:
        if not actor.is_admin:
            raise ForbiddenError("Only admins can read the general activity topic")
        return
    task_id = parse_task_topic(topic)
    if task_id is None:
        raise ValidationError(f"Unknown activity topic: {topic}")
    await load_visible_task(store_group.task_store, task_id, actor)


def _activity_body(activity: Activity, missing_count: int) -> dict:
    return {
        "activity_id": activity.activity_id,
        "topic": activity.topic,
        "action": activity.action.value,
        "payload": activity.payload,
        "user_id": activity.user_id,
        "created_at": activity.created_at.isoformat(),
        "attachments_missing": missing_count,
    }


@router.get("/v1/activity")
async def list_activity(
    topic: str = Query(..., description="TASK_<id> 或 GENERAL"),
    order: Literal["asc", "desc"] = Query(default="asc"),
    cursor: str | None = Query(default=None, description="上一页最后一条的 activity_id"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    collapse: bool = Query(default=False),
    hide_unimportant: bool = Query(default=False),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
    policy=Depends(get_policy),
):
    await _authorize_topic(topic, actor, store_group)

    activity_log = ActivityLog(store_group.activity_store)
    page = await activity_log.query(topic, order=order, after=cursor, limit=limit)
    # 游标基于原始日志，折叠只影响展示
    next_cursor = page[-1].activity_id if len(page) == limit else None

    if collapse:
        shown = project(
            page,
            hide_unimportant=hide_unimportant,
            window_seconds=policy.feed_dedup_window_s,
        )
    elif hide_unimportant:
        shown = [a for a in page if a.action not in UNIMPORTANT_ACTIONS]
    else:
        shown = page

    referenced = {
        attachment_id
        for activity in shown
        for attachment_id in referenced_attachment_ids(activity)
    }
    existing = await store_group.attachment_storage.resolve(sorted(referenced))
    existing_ids = {a.attachment_id for a in existing}

    return {
        "activities": [
            _activity_body(a, summarize_attachment_refs(a, existing_ids).missing_count)
            for a in shown
        ],
        "next_cursor": next_cursor,
    }
