"""Task Domain Model

tasks 表的 status 列是 activities 的缓存投影（projection），
状态变更只能经由 TaskStateMachine 触发。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .enums import TaskStatus


class GeoLocation(BaseModel):
    """任务参考位置（由 admin 设置）"""

    lat: float = Field(ge=-90, le=90, description="纬度")
    lng: float = Field(ge=-180, le=180, description="经度")
    address: str | None = Field(default=None, description="地址")
    name: str | None = Field(default=None, description="地点名称")


class Task(BaseModel):
    """Task 数据模型

    status 只能沿 PREPARING -> READY -> IN_PROGRESS -> COMPLETED 前进。
    """

    task_id: int = Field(description="唯一标识，自增整数")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    status: TaskStatus = Field(default=TaskStatus.PREPARING, description="当前状态")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    customer_name: str | None = Field(default=None, description="客户名称")
    customer_phone: str | None = Field(default=None, description="客户电话")
    geo_location: GeoLocation | None = Field(
        default=None,
        description="参考位置，check-in/check-out 距离校验的基准点",
    )
    expected_revenue: Decimal | None = Field(
        default=None,
        ge=0,
        description="预期收入，仅用于对账，不做强制",
    )
    assignee_ids: list[str] = Field(default_factory=list, description="执行人 ID 列表")
    started_at: datetime | None = Field(default=None, description="check-in 时间")
    completed_at: datetime | None = Field(default=None, description="check-out 时间")

    def is_assigned(self, user_id: str) -> bool:
        return user_id in self.assignee_ids


class TaskCreate(BaseModel):
    """admin 创建任务的输入"""

    title: str = Field(min_length=1, max_length=200, description="任务标题")
    description: str = Field(default="", max_length=5000, description="任务描述")
    customer_name: str | None = Field(default=None, max_length=200, description="客户名称")
    customer_phone: str | None = Field(default=None, max_length=50, description="客户电话")
    geo_location: GeoLocation | None = Field(default=None, description="参考位置")
    expected_revenue: Decimal | None = Field(default=None, ge=0, description="预期收入")
    assignee_ids: list[str] = Field(default_factory=list, description="执行人 ID 列表")
