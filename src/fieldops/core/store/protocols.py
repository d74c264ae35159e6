"""Store Protocol 接口定义

定义 TaskStore、ActivityStore、AttachmentStorage 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Literal, Protocol

from ..models.activity import Activity
from ..models.attachment import Attachment, AttachmentUpload, StoredAttachment
from ..models.enums import ActivityAction, TaskStatus
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> int:
        """创建任务记录，返回 task_id"""
        ...

    async def get_task(self, task_id: int) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def compare_and_set_status(
        self,
        task_id: int,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        updated_at: datetime,
    ) -> bool:
        """条件更新状态（CAS），返回是否生效"""
        ...


class ActivityStore(Protocol):
    """Activity 存储接口

    append-only：只允许插入，不允许更新或删除。
    """

    async def append(self, activity: Activity) -> Activity:
        """追加 Activity"""
        ...

    async def list_for_topic(
        self,
        topic: str,
        order: Literal["asc", "desc"] = "asc",
        after: str | None = None,
        limit: int | None = None,
    ) -> list[Activity]:
        """按 topic 有序查询，可通过游标续读"""
        ...

    async def find_first(
        self,
        topic: str,
        action: ActivityAction,
        user_id: str | None = None,
    ) -> Activity | None:
        """查询第一条匹配记录"""
        ...

    async def get_by_idempotency_key(self, key: str) -> Activity | None:
        """根据幂等键查询"""
        ...

    async def list_by_action(
        self,
        action: ActivityAction,
        user_id: str | None = None,
    ) -> list[Activity]:
        """跨 topic 按 action 查询"""
        ...


class AttachmentStorage(Protocol):
    """附件存储协作方接口

    只负责字节与元数据；核心仅持有 attachment_id 引用。
    """

    async def store(
        self,
        upload: AttachmentUpload,
        *,
        task_id: int,
        uploaded_by: str,
        now: datetime,
    ) -> StoredAttachment:
        """存储附件，返回 attachment_id + URL"""
        ...

    async def resolve(self, attachment_ids: list[str]) -> list[Attachment]:
        """解析附件 ID，已删除的静默省略"""
        ...

    async def claim(self, attachment_ids: list[str]) -> int:
        """标记附件已被引用，返回认领数量"""
        ...

    async def soft_delete(self, attachment_id: str, now: datetime) -> bool:
        """软删除附件"""
        ...

    async def delete_unclaimed(self, older_than: datetime) -> int:
        """回收未认领附件"""
        ...
