"""ActivityLog -- 审计日志写入与查询

record：校验 action 与 payload 后追加写入，永不更新/删除。
query：按 topic 返回有序、可续读、有限的 Activity 序列。

record 不提交事务，与业务写操作处于同一个 unit of work。
"""

from datetime import UTC, datetime
from typing import Literal

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from .exceptions import ValidationError
from .models.activity import Activity
from .models.enums import ActivityAction
from .models.payloads import PAYLOAD_MODELS
from .store.protocols import ActivityStore

log = structlog.get_logger()


def normalize_payload(action: ActivityAction | str, payload: BaseModel | dict) -> dict:
    """按 action 对应的 payload 模型校验并序列化

    Raises:
        ValidationError: 未知 action 或 payload 与 action 不匹配
    """
    try:
        action = ActivityAction(action)
    except ValueError as e:
        raise ValidationError(f"Unknown activity action: {action}") from e

    model = PAYLOAD_MODELS[action]
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    try:
        validated = model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid payload for {action.value}: {e.errors()}") from e
    return validated.model_dump(mode="json", exclude_none=True)


class ActivityLog:
    """append-only 活动日志"""

    def __init__(self, store: ActivityStore) -> None:
        self._store = store

    async def record(
        self,
        topic: str,
        action: ActivityAction | str,
        payload: BaseModel | dict,
        user_id: str | None = None,
        *,
        idempotency_key: str | None = None,
        created_at: datetime | None = None,
    ) -> Activity:
        """追加一条 Activity

        Args:
            topic: 聚合分区键，例如 TASK_42
            action: 动作类型（封闭集合）
            payload: 与 action 对应的 payload 模型或 dict
            user_id: 操作者，None 表示系统事件
            idempotency_key: 幂等键（唯一）
            created_at: 创建时间，默认当前 UTC 时间

        Returns:
            写入后的 Activity（含 seq）
        """
        normalized = normalize_payload(action, payload)
        activity = Activity(
            activity_id=str(ULID()),
            topic=topic,
            action=ActivityAction(action),
            payload=normalized,
            user_id=user_id,
            created_at=created_at or datetime.now(UTC),
            idempotency_key=idempotency_key,
        )
        stored = await self._store.append(activity)
        log.debug(
            "activity_recorded",
            topic=topic,
            action=stored.action.value,
            activity_id=stored.activity_id,
        )
        return stored

    async def query(
        self,
        topic: str,
        order: Literal["asc", "desc"] = "asc",
        after: str | None = None,
        limit: int | None = None,
    ) -> list[Activity]:
        """按 topic 查询 Activity（默认旧 -> 新）"""
        return await self._store.list_for_topic(topic, order=order, after=after, limit=limit)

    async def find_first(
        self,
        topic: str,
        action: ActivityAction,
        user_id: str | None = None,
    ) -> Activity | None:
        return await self._store.find_first(topic, action, user_id)

    async def find_by_idempotency_key(self, key: str) -> Activity | None:
        return await self._store.get_by_idempotency_key(key)
