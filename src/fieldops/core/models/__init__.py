"""fieldops Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .activity import GENERAL_TOPIC, Activity, task_topic
from .actor import Actor
from .attachment import Attachment, AttachmentUpload, StoredAttachment
from .enums import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActivityAction,
    TaskStatus,
    UserRole,
    validate_transition,
)
from .field_event import CheckInRequest, CheckOutRequest
from .payloads import (
    PAYLOAD_MODELS,
    AttachmentDeletedPayload,
    AttachmentRef,
    LocationFix,
    PaymentChanges,
    PaymentCollectedPayload,
    PaymentUpdatedPayload,
    TaskAssigneesUpdatedPayload,
    TaskAttachmentsUploadedPayload,
    TaskCreatedPayload,
    TaskExpectedRevenueUpdatedPayload,
    TaskCheckedInPayload,
    TaskCheckedOutPayload,
    TaskCommentedPayload,
    TaskStatusUpdatedPayload,
    ValueChange,
)
from .payment import Payment, PaymentSummary
from .task import GeoLocation, Task, TaskCreate

__all__ = [
    # 枚举
    "TaskStatus",
    "ActivityAction",
    "UserRole",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # Task
    "Task",
    "GeoLocation",
    "TaskCreate",
    # Activity
    "Activity",
    "GENERAL_TOPIC",
    "task_topic",
    # Actor
    "Actor",
    # Attachment
    "Attachment",
    "AttachmentUpload",
    "StoredAttachment",
    # Payment
    "Payment",
    "PaymentSummary",
    # 请求
    "CheckInRequest",
    "CheckOutRequest",
    # Payloads
    "PAYLOAD_MODELS",
    "AttachmentRef",
    "LocationFix",
    "TaskCreatedPayload",
    "TaskStatusUpdatedPayload",
    "TaskAssigneesUpdatedPayload",
    "TaskCheckedInPayload",
    "TaskCheckedOutPayload",
    "TaskCommentedPayload",
    "PaymentCollectedPayload",
    "PaymentUpdatedPayload",
    "PaymentChanges",
    "ValueChange",
    "TaskExpectedRevenueUpdatedPayload",
    "AttachmentDeletedPayload",
    "TaskAttachmentsUploadedPayload",
]
