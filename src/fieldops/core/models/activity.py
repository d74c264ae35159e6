"""Activity Domain Model

activities 表 append-only，不允许更新或删除。
activity_id 使用 ULID 格式，时间有序。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActivityAction

GENERAL_TOPIC = "GENERAL"


def task_topic(task_id: int) -> str:
    """任务聚合的 topic，例如 TASK_42"""
    return f"TASK_{task_id}"


class Activity(BaseModel):
    """Activity 数据模型（审计日志 + 动态流数据源）

    一经写入不可修改；更正通过追加新事件表达（例如 PAYMENT_UPDATED）。
    """

    activity_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    seq: int = Field(default=0, description="全局写入序号，严格单调递增（写入后回填）")
    topic: str = Field(description="聚合分区键，例如 TASK_<id>")
    action: ActivityAction = Field(description="动作类型")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
    user_id: str | None = Field(default=None, description="操作者，None 表示系统事件")
    created_at: datetime = Field(description="创建时间")
    idempotency_key: str | None = Field(default=None, description="幂等键")
