"""fieldops Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from pathlib import Path

import aiosqlite

from .activity_store import SqliteActivityStore
from .attachment_store import LocalAttachmentStorage
from .payment_store import SqlitePaymentStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import unit_of_work


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        attachments_dir: Path,
    ) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.activity_store = SqliteActivityStore(conn)
        self.payment_store = SqlitePaymentStore(conn)
        self.attachment_storage = LocalAttachmentStorage(conn, attachments_dir)

    def transaction(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
        """开启 unit of work（串行化 + 原子提交/回滚）"""
        return unit_of_work(self.conn, self.write_lock)


async def create_store_group(
    db_path: str,
    attachments_dir: str | Path,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        attachments_dir: 附件文件存储目录

    Returns:
        StoreGroup 实例
    """
    attachments_path = Path(attachments_dir)
    attachments_path.mkdir(parents=True, exist_ok=True)

    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn, attachments_dir=attachments_path)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteActivityStore",
    "SqlitePaymentStore",
    "LocalAttachmentStorage",
    "init_db",
    "unit_of_work",
]
