"""Activity Payload 子类型

每种 ActivityAction 对应一个 payload 模型（以 action 为标签的联合类型）。
PAYLOAD_MODELS 在导入时校验覆盖全部 action，缺失即启动失败。
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..config import COMMENT_MAX_LENGTH
from .enums import ActivityAction, TaskStatus


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AttachmentRef(_Payload):
    """payload 中的附件引用（仅 id + 摘要，不含字节）"""

    id: str
    mime_type: str = ""
    original_filename: str = ""


class LocationFix(_Payload):
    """check-in/check-out 时的 GPS 定位"""

    lat: float
    lng: float
    accuracy: float | None = None


class TaskCreatedPayload(_Payload):
    """TASK_CREATED 事件 payload"""

    title: str
    assignee_ids: list[str] = Field(default_factory=list)
    has_location: bool = False
    expected_revenue: Decimal | None = None


class TaskStatusUpdatedPayload(_Payload):
    """TASK_STATUS_UPDATED 事件 payload"""

    old_status: TaskStatus
    new_status: TaskStatus


class TaskAssigneesUpdatedPayload(_Payload):
    """TASK_ASSIGNEES_UPDATED 事件 payload"""

    old_assignee_ids: list[str] = Field(default_factory=list)
    new_assignee_ids: list[str]


class _FieldEventPayload(_Payload):
    """check-in / check-out 事件 payload 公共字段

    任务未设置位置时 distance_from_task 缺省。
    warnings 原样持久化，供后续审核。
    """

    location: LocationFix
    distance_from_task: float | None = None
    notes: str | None = None
    warnings: list[str] = Field(default_factory=list)
    attachments: list[AttachmentRef] = Field(default_factory=list)
    payment_collected: bool = False


class TaskCheckedInPayload(_FieldEventPayload):
    """TASK_CHECKED_IN 事件 payload"""

    type: Literal["CHECK_IN"] = "CHECK_IN"


class TaskCheckedOutPayload(_FieldEventPayload):
    """TASK_CHECKED_OUT 事件 payload"""

    type: Literal["CHECK_OUT"] = "CHECK_OUT"


class TaskCommentedPayload(_Payload):
    """TASK_COMMENTED 事件 payload"""

    type: Literal["COMMENT"] = "COMMENT"
    comment: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)
    attachments: list[AttachmentRef] = Field(default_factory=list)


class PaymentCollectedPayload(_Payload):
    """PAYMENT_COLLECTED 事件 payload"""

    payment_id: str
    amount: Decimal
    currency: str = "VND"
    has_invoice: bool = False
    invoice_attachment_id: str | None = None
    notes: str | None = None
    expected_revenue: Decimal | None = None
    mismatch: bool = False
    difference_abs: Decimal | None = None


class ValueChange(_Payload):
    """字段修改前后值"""

    old: str | None = None
    new: str | None = None


class PaymentChanges(_Payload):
    amount: ValueChange | None = None
    notes: ValueChange | None = None
    invoice_replaced: bool = False
    new_invoice_attachment_id: str | None = None


class PaymentUpdatedPayload(_Payload):
    """PAYMENT_UPDATED 事件 payload -- 引用原 payment，记录修改前后值"""

    payment_id: str
    edit_reason: str
    changes: PaymentChanges


class TaskExpectedRevenueUpdatedPayload(_Payload):
    """TASK_EXPECTED_REVENUE_UPDATED 事件 payload"""

    old_expected_revenue: Decimal | None = None
    new_expected_revenue: Decimal | None = None


class AttachmentDeletedPayload(_Payload):
    """ATTACHMENT_DELETED 事件 payload"""

    attachment_id: str
    original_filename: str = ""


class TaskAttachmentsUploadedPayload(_Payload):
    """TASK_ATTACHMENTS_UPLOADED 事件 payload"""

    attachments: list[AttachmentRef]


PAYLOAD_MODELS: dict[ActivityAction, type[BaseModel]] = {
    ActivityAction.TASK_CREATED: TaskCreatedPayload,
    ActivityAction.TASK_STATUS_UPDATED: TaskStatusUpdatedPayload,
    ActivityAction.TASK_ASSIGNEES_UPDATED: TaskAssigneesUpdatedPayload,
    ActivityAction.TASK_CHECKED_IN: TaskCheckedInPayload,
    ActivityAction.TASK_CHECKED_OUT: TaskCheckedOutPayload,
    ActivityAction.PAYMENT_COLLECTED: PaymentCollectedPayload,
    ActivityAction.PAYMENT_UPDATED: PaymentUpdatedPayload,
    ActivityAction.TASK_EXPECTED_REVENUE_UPDATED: TaskExpectedRevenueUpdatedPayload,
    ActivityAction.ATTACHMENT_DELETED: AttachmentDeletedPayload,
    ActivityAction.TASK_ATTACHMENTS_UPLOADED: TaskAttachmentsUploadedPayload,
    ActivityAction.TASK_COMMENTED: TaskCommentedPayload,
}

_missing = set(ActivityAction) - set(PAYLOAD_MODELS)
if _missing:
    raise RuntimeError(f"payload model missing for actions: {sorted(_missing)}")
