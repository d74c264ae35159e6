"""ActivityStore SQLite 实现

activities 表 append-only：只提供插入和查询，没有更新或删除接口。
seq 全局严格单调递增，决定同一 topic 内的顺序。
"""

import json
from datetime import datetime
from typing import Literal

import aiosqlite

from ..models.activity import Activity
from ..models.enums import ActivityAction

_COLUMNS = "seq, activity_id, topic, action, payload, user_id, created_at, idempotency_key"


class SqliteActivityStore:
    """ActivityStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append(self, activity: Activity) -> Activity:
        """追加 Activity（append-only），返回回填 seq 后的记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        cursor = await self._conn.execute(
            """
            INSERT INTO activities (activity_id, topic, action, payload,
                                    user_id, created_at, idempotency_key)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                activity.activity_id,
                activity.topic,
                activity.action.value,
                json.dumps(activity.payload, ensure_ascii=False),
                activity.user_id,
                activity.created_at.isoformat(),
                activity.idempotency_key,
            ),
        )
        return activity.model_copy(update={"seq": cursor.lastrowid})

    async def list_for_topic(
        self,
        topic: str,
        order: Literal["asc", "desc"] = "asc",
        after: str | None = None,
        limit: int | None = None,
    ) -> list[Activity]:
        """查询指定 topic 的 Activity

        Args:
            topic: 聚合分区键
            order: asc 旧 -> 新；desc 新 -> 旧
            after: 游标（activity_id），返回该记录之后（按 order 方向）的记录
            limit: 最多返回条数
        """
        direction = "DESC" if order == "desc" else "ASC"
        comparator = "<" if order == "desc" else ">"
        sql = f"SELECT {_COLUMNS} FROM activities WHERE topic = ?"
        params: list = [topic]
        if after is not None:
            sql += f" AND seq {comparator} (SELECT seq FROM activities WHERE activity_id = ?)"
            params.append(after)
        sql += f" ORDER BY seq {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_activity(row) for row in rows]

    async def find_first(
        self,
        topic: str,
        action: ActivityAction,
        user_id: str | None = None,
    ) -> Activity | None:
        """查询 topic 内第一条匹配 action（及 user_id）的记录"""
        sql = f"SELECT {_COLUMNS} FROM activities WHERE topic = ? AND action = ?"
        params: list = [topic, action.value]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY seq ASC LIMIT 1"
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return self._row_to_activity(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Activity | None:
        """根据幂等键查询已写入的 Activity"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM activities WHERE idempotency_key = ? LIMIT 1",
            (key,),
        )
        row = await cursor.fetchone()
        return self._row_to_activity(row) if row else None

    async def list_by_action(
        self,
        action: ActivityAction,
        user_id: str | None = None,
    ) -> list[Activity]:
        """查询全部 topic 中指定 action（及 user_id）的记录，按 seq 排序"""
        sql = f"SELECT {_COLUMNS} FROM activities WHERE action = ?"
        params: list = [action.value]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY seq ASC"
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_activity(row) for row in rows]

    async def list_all(self) -> list[Activity]:
        """查询所有 Activity，按 seq 排序（用于 Projection 重建）"""
        cursor = await self._conn.execute(f"SELECT {_COLUMNS} FROM activities ORDER BY seq ASC")
        rows = await cursor.fetchall()
        return [self._row_to_activity(row) for row in rows]

    @staticmethod
    def _row_to_activity(row: aiosqlite.Row) -> Activity:
        """将数据库行转换为 Activity 模型"""
        payload = json.loads(row[4]) if row[4] else {}
        return Activity(
            seq=row[0],
            activity_id=row[1],
            topic=row[2],
            action=ActivityAction(row[3]),
            payload=payload,
            user_id=row[5],
            created_at=datetime.fromisoformat(row[6]),
            idempotency_key=row[7],
        )
