"""CommentService -- 任务评论

评论不改变任务状态，仅在任务 topic 下追加 TASK_COMMENTED。
附件先写入存储，再与评论 Activity 在同一事务内认领。
"""

from datetime import UTC, datetime

import structlog

from fieldops.core.activity_log import ActivityLog
from fieldops.core.config import COMMENT_MAX_FILES, COMMENT_MAX_LENGTH
from fieldops.core.exceptions import ValidationError
from fieldops.core.models import (
    Activity,
    ActivityAction,
    Actor,
    AttachmentUpload,
    TaskCommentedPayload,
    task_topic,
)
from fieldops.core.store import StoreGroup

from .access import load_visible_task
from .attachment_service import attachment_refs, claim_stored, store_uploads

log = structlog.get_logger()


class CommentService:
    """评论业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._activity_log = ActivityLog(store_group.activity_store)

    async def add_comment(
        self,
        task_id: int,
        actor: Actor,
        comment: str,
        files: list[AttachmentUpload] | None = None,
    ) -> Activity:
        """admin 或执行人发表评论

        Raises:
            ValidationError: 评论为空 / 过长、附件过多或不是图片
            NotFoundError: 任务不存在
            ForbiddenError: 非 admin 且未被分配
        """
        files = files or []
        text = comment.strip()
        if not text:
            raise ValidationError("Comment must not be empty")
        if len(text) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"Comment must be at most {COMMENT_MAX_LENGTH} characters")
        if len(files) > COMMENT_MAX_FILES:
            raise ValidationError(f"At most {COMMENT_MAX_FILES} photos per comment")
        for upload in files:
            if not upload.mime_type.startswith("image/"):
                raise ValidationError(
                    f"Comment attachments must be images, got {upload.mime_type}"
                )

        await load_visible_task(self._stores.task_store, task_id, actor)

        now = datetime.now(UTC)
        stored = await store_uploads(self._stores, task_id, actor.user_id, files, now)

        async with self._stores.transaction():
            await claim_stored(self._stores, stored)
            activity = await self._activity_log.record(
                task_topic(task_id),
                ActivityAction.TASK_COMMENTED,
                TaskCommentedPayload(comment=text, attachments=attachment_refs(stored)),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info("task_commented", task_id=task_id, attachments=len(stored))
        return activity
