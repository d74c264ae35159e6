"""Unit of Work 事务封装

同一 SQLite 连接同一时刻只有一个事务，
因此所有写操作经由 unit_of_work 串行化，并在退出时原子提交或回滚。
状态流转的并发正确性由 tasks.status 的 CAS 保证，而不是这把锁。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite


@asynccontextmanager
async def unit_of_work(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """在同一事务内执行一组写操作

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        lock: 连接级写锁

    Raises:
        Exception: 块内任意异常都会触发回滚并原样抛出
    """
    async with lock:
        try:
            yield conn
            # 原子提交
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise
