"""AttachmentService -- 任务附件上传 / 下载 / 软删除

上传与删除都会在任务 topic 下追加对应 Activity；
已删除附件的字节保留，但 resolve 不再返回，动态流中显示为“N 个文件已删除”。
"""

from datetime import UTC, datetime

import aiosqlite
import structlog

from fieldops.core.activity_log import ActivityLog
from fieldops.core.config import MAX_ATTACHMENTS
from fieldops.core.exceptions import (
    AttachmentStorageError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from fieldops.core.models import (
    ActivityAction,
    Actor,
    Attachment,
    AttachmentDeletedPayload,
    AttachmentRef,
    AttachmentUpload,
    StoredAttachment,
    TaskAttachmentsUploadedPayload,
    task_topic,
)
from fieldops.core.store import StoreGroup

from .access import load_visible_task

log = structlog.get_logger()


async def store_uploads(
    stores: StoreGroup,
    task_id: int,
    uploaded_by: str,
    files: list[AttachmentUpload],
    now: datetime,
) -> list[StoredAttachment]:
    """逐个写入附件（未认领状态），任一失败抛 AttachmentStorageError"""
    stored: list[StoredAttachment] = []
    for upload in files:
        try:
            async with stores.transaction():
                stored.append(
                    await stores.attachment_storage.store(
                        upload,
                        task_id=task_id,
                        uploaded_by=uploaded_by,
                        now=now,
                    )
                )
        except (OSError, aiosqlite.Error) as e:
            raise AttachmentStorageError(
                f"Failed to store attachment {upload.filename or '<unnamed>'}"
            ) from e
    return stored


async def claim_stored(stores: StoreGroup, stored: list[StoredAttachment]) -> None:
    """认领已写入的附件，须在调用方的事务内执行"""
    ids = [item.attachment_id for item in stored]
    if not ids:
        return
    claimed = await stores.attachment_storage.claim(ids)
    if claimed != len(ids):
        raise AttachmentStorageError(
            f"Only {claimed} of {len(ids)} stored attachments could be claimed"
        )


def attachment_refs(stored: list[StoredAttachment]) -> list[AttachmentRef]:
    return [
        AttachmentRef(
            id=item.attachment_id,
            mime_type=item.attachment.mime_type,
            original_filename=item.attachment.original_filename,
        )
        for item in stored
    ]


class AttachmentService:
    """附件业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._activity_log = ActivityLog(store_group.activity_store)

    async def upload(
        self,
        task_id: int,
        actor: Actor,
        files: list[AttachmentUpload],
    ) -> list[StoredAttachment]:
        """上传任务附件（admin 或执行人），记录 TASK_ATTACHMENTS_UPLOADED"""
        if not files:
            raise ValidationError("At least one file is required")
        if len(files) > MAX_ATTACHMENTS:
            raise ValidationError(f"At most {MAX_ATTACHMENTS} files per request")
        await load_visible_task(self._stores.task_store, task_id, actor)

        now = datetime.now(UTC)
        stored = await store_uploads(self._stores, task_id, actor.user_id, files, now)

        async with self._stores.transaction():
            await claim_stored(self._stores, stored)
            await self._activity_log.record(
                task_topic(task_id),
                ActivityAction.TASK_ATTACHMENTS_UPLOADED,
                TaskAttachmentsUploadedPayload(attachments=attachment_refs(stored)),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info("task_attachments_uploaded", task_id=task_id, count=len(stored))
        return stored

    async def get(self, attachment_id: str, actor: Actor) -> tuple[Attachment, bytes]:
        """读取附件元数据与内容"""
        attachment = await self._stores.attachment_storage.get_attachment(attachment_id)
        if attachment is None or attachment.deleted_at is not None:
            raise NotFoundError(f"Attachment {attachment_id} not found")
        await load_visible_task(self._stores.task_store, attachment.task_id, actor)
        content = await self._stores.attachment_storage.get_content(attachment_id)
        if content is None:
            raise NotFoundError(f"Attachment {attachment_id} content is missing")
        return attachment, content

    async def delete(self, attachment_id: str, actor: Actor) -> Attachment:
        """软删除附件（admin 或上传者），记录 ATTACHMENT_DELETED"""
        attachment = await self._stores.attachment_storage.get_attachment(attachment_id)
        if attachment is None or attachment.deleted_at is not None:
            raise NotFoundError(f"Attachment {attachment_id} not found")
        if not actor.is_admin and attachment.uploaded_by != actor.user_id:
            raise ForbiddenError("Only admins or the uploader can delete an attachment")

        now = datetime.now(UTC)
        async with self._stores.transaction():
            deleted = await self._stores.attachment_storage.soft_delete(attachment_id, now)
            if not deleted:
                raise NotFoundError(f"Attachment {attachment_id} not found")
            await self._activity_log.record(
                task_topic(attachment.task_id),
                ActivityAction.ATTACHMENT_DELETED,
                AttachmentDeletedPayload(
                    attachment_id=attachment_id,
                    original_filename=attachment.original_filename,
                ),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info("attachment_deleted", attachment_id=attachment_id, task_id=attachment.task_id)
        return attachment.model_copy(update={"deleted_at": now})
