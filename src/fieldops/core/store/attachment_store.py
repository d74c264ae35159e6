"""附件存储 -- 存储协作方的 SQLite + 本地文件系统实现

元数据写 SQLite，字节写入 attachments_dir/<task_id>/<attachment_id>。
store 产生的附件初始为“未认领”；现场事件提交时 claim，
未认领且超过宽限期的附件由 delete_unclaimed 回收（存储侧 GC）。

除 store 写文件外，所有方法都不自动提交事务。
"""

import hashlib
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog
from ulid import ULID

from ..models.attachment import Attachment, AttachmentUpload, StoredAttachment

log = structlog.get_logger()

_COLUMNS = (
    "attachment_id, task_id, mime_type, size, original_filename, uploaded_by, "
    "created_at, storage_ref, sha256, claimed, deleted_at"
)


def compute_hash_and_size(content: bytes) -> tuple[str, int]:
    """计算 SHA-256 hash 和内容大小

    Returns:
        (sha256_hex, size_bytes) 元组
    """
    return hashlib.sha256(content).hexdigest(), len(content)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class LocalAttachmentStorage:
    """AttachmentStorage 的本地实现"""

    def __init__(self, conn: aiosqlite.Connection, attachments_dir: Path) -> None:
        self._conn = conn
        self._attachments_dir = attachments_dir

    @property
    def attachments_dir(self) -> Path:
        return self._attachments_dir

    async def store(
        self,
        upload: AttachmentUpload,
        *,
        task_id: int,
        uploaded_by: str,
        now: datetime,
    ) -> StoredAttachment:
        """写入文件字节 + 元数据，返回 attachment_id 和访问 URL

        元数据插入失败时删除已写入的文件。
        """
        attachment_id = str(ULID())
        sha256, size = compute_hash_and_size(upload.content)
        file_path = self._get_attachment_path(task_id, attachment_id)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(upload.content)

        attachment = Attachment(
            attachment_id=attachment_id,
            task_id=task_id,
            mime_type=upload.mime_type or "application/octet-stream",
            size=size,
            original_filename=upload.filename,
            uploaded_by=uploaded_by,
            created_at=now,
            storage_ref=str(file_path),
            sha256=sha256,
        )
        try:
            await self._conn.execute(
                f"INSERT INTO attachments ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    attachment.attachment_id,
                    attachment.task_id,
                    attachment.mime_type,
                    attachment.size,
                    attachment.original_filename,
                    attachment.uploaded_by,
                    attachment.created_at.isoformat(),
                    attachment.storage_ref,
                    attachment.sha256,
                    0,
                    None,
                ),
            )
        except Exception:
            file_path.unlink(missing_ok=True)
            raise

        return StoredAttachment(
            attachment_id=attachment_id,
            url=f"/v1/attachment/{attachment_id}",
            attachment=attachment,
        )

    async def resolve(self, attachment_ids: list[str]) -> list[Attachment]:
        """解析附件 ID，已软删除或不存在的静默省略"""
        if not attachment_ids:
            return []
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM attachments
            WHERE attachment_id IN ({_placeholders(len(attachment_ids))})
              AND deleted_at IS NULL
            """,
            attachment_ids,
        )
        rows = await cursor.fetchall()
        by_id = {row[0]: self._row_to_attachment(row) for row in rows}
        # 保持调用方给定的顺序
        return [by_id[attachment_id] for attachment_id in attachment_ids if attachment_id in by_id]

    async def claim(self, attachment_ids: list[str]) -> int:
        """标记附件已被 Activity 引用，返回成功认领的数量"""
        if not attachment_ids:
            return 0
        cursor = await self._conn.execute(
            f"""
            UPDATE attachments SET claimed = 1
            WHERE attachment_id IN ({_placeholders(len(attachment_ids))})
              AND deleted_at IS NULL
            """,
            attachment_ids,
        )
        return cursor.rowcount

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        """查询附件元数据（包含已软删除的）"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM attachments WHERE attachment_id = ?",
            (attachment_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_attachment(row) if row else None

    async def list_for_task(self, task_id: int) -> list[Attachment]:
        """查询任务的可见附件（已认领且未删除）"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM attachments
            WHERE task_id = ? AND claimed = 1 AND deleted_at IS NULL
            ORDER BY created_at ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_attachment(row) for row in rows]

    async def get_content(self, attachment_id: str) -> bytes | None:
        """读取附件内容，已删除或文件丢失返回 None"""
        attachment = await self.get_attachment(attachment_id)
        if attachment is None or attachment.deleted_at is not None:
            return None
        if attachment.storage_ref:
            file_path = Path(attachment.storage_ref)
            if file_path.exists():
                return file_path.read_bytes()
        return None

    async def soft_delete(self, attachment_id: str, now: datetime) -> bool:
        """软删除附件（保留字节，resolve 不再返回）"""
        cursor = await self._conn.execute(
            "UPDATE attachments SET deleted_at = ? WHERE attachment_id = ? AND deleted_at IS NULL",
            (now.isoformat(), attachment_id),
        )
        return cursor.rowcount == 1

    async def delete_unclaimed(self, older_than: datetime) -> int:
        """回收早于 older_than 且从未被认领的附件（元数据 + 文件）"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM attachments WHERE claimed = 0 AND created_at < ?",
            (older_than.isoformat(),),
        )
        rows = await cursor.fetchall()
        orphans = [self._row_to_attachment(row) for row in rows]
        for orphan in orphans:
            if orphan.storage_ref:
                Path(orphan.storage_ref).unlink(missing_ok=True)
            await self._conn.execute(
                "DELETE FROM attachments WHERE attachment_id = ?",
                (orphan.attachment_id,),
            )
        if orphans:
            log.info("orphan_attachments_deleted", count=len(orphans))
        return len(orphans)

    def _get_attachment_path(self, task_id: int, attachment_id: str) -> Path:
        """获取附件文件存储路径"""
        return self._attachments_dir / str(task_id) / attachment_id

    @staticmethod
    def _row_to_attachment(row: aiosqlite.Row) -> Attachment:
        """将数据库行转换为 Attachment 模型"""
        return Attachment(
            attachment_id=row[0],
            task_id=row[1],
            mime_type=row[2],
            size=row[3],
            original_filename=row[4],
            uploaded_by=row[5],
            created_at=datetime.fromisoformat(row[6]),
            storage_ref=row[7],
            sha256=row[8],
            claimed=bool(row[9]),
            deleted_at=datetime.fromisoformat(row[10]) if row[10] else None,
        )
