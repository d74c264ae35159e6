"""TaskStore SQLite 实现

tasks.status 是 activities 的缓存投影。
状态只能通过 compare_and_set_status 条件更新（CAS），此处仅提供数据库操作，
不自动提交事务，由调用方的 unit of work 管理。
"""

import json
from datetime import datetime
from decimal import Decimal

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import GeoLocation, Task

_COLUMNS = (
    "task_id, created_at, updated_at, status, title, description, customer_name, "
    "customer_phone, geo_location, expected_revenue, assignee_ids, started_at, completed_at"
)

_LIFECYCLE_COLUMNS = frozenset({"started_at", "completed_at"})


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> int:
        """创建任务记录，返回自增 task_id

        task.task_id <= 0 时由数据库分配；大于 0 时按给定值写入（projection 重建使用）。
        """
        cursor = await self._conn.execute(
            f"""
            INSERT INTO tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id if task.task_id > 0 else None,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
                task.status.value,
                task.title,
                task.description,
                task.customer_name,
                task.customer_phone,
                task.geo_location.model_dump_json() if task.geo_location else None,
                str(task.expected_revenue) if task.expected_revenue is not None else None,
                json.dumps(task.assignee_ids, ensure_ascii=False),
                _iso(task.started_at),
                _iso(task.completed_at),
            ),
        )
        return cursor.lastrowid

    async def get_task(self, task_id: int) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        status: str | None = None,
        assignee_id: str | None = None,
    ) -> list[Task]:
        """查询任务列表，支持按状态 / 执行人筛选，按 created_at 倒序"""
        clauses: list[str] = []
        params: list[str] = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if assignee_id:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(tasks.assignee_ids) WHERE value = ?)"
            )
            params.append(assignee_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks {where} ORDER BY created_at DESC, task_id DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def compare_and_set_status(
        self,
        task_id: int,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        updated_at: datetime,
    ) -> bool:
        """条件更新状态：仅当当前状态等于 expected_status 时生效

        Returns:
            True 表示更新成功；False 表示状态已被并发修改（CAS 失败）
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET status = ?, updated_at = ?
            WHERE task_id = ? AND status = ?
            """,
            (new_status.value, updated_at.isoformat(), task_id, expected_status.value),
        )
        return cursor.rowcount == 1

    async def set_lifecycle_timestamp(
        self,
        task_id: int,
        column: str,
        value: datetime,
    ) -> None:
        """写入 started_at / completed_at"""
        if column not in _LIFECYCLE_COLUMNS:
            raise ValueError(f"unsupported lifecycle column: {column}")
        await self._conn.execute(
            f"UPDATE tasks SET {column} = ?, updated_at = ? WHERE task_id = ?",
            (value.isoformat(), value.isoformat(), task_id),
        )

    async def update_assignees(
        self,
        task_id: int,
        assignee_ids: list[str],
        updated_at: datetime,
    ) -> None:
        await self._conn.execute(
            "UPDATE tasks SET assignee_ids = ?, updated_at = ? WHERE task_id = ?",
            (json.dumps(assignee_ids, ensure_ascii=False), updated_at.isoformat(), task_id),
        )

    async def update_expected_revenue(
        self,
        task_id: int,
        expected_revenue: Decimal | None,
        updated_at: datetime,
    ) -> None:
        await self._conn.execute(
            "UPDATE tasks SET expected_revenue = ?, updated_at = ? WHERE task_id = ?",
            (
                str(expected_revenue) if expected_revenue is not None else None,
                updated_at.isoformat(),
                task_id,
            ),
        )

    async def overwrite_status(self, task_id: int, status: TaskStatus) -> None:
        """无条件覆盖缓存状态（仅供 projection 重建使用）"""
        await self._conn.execute(
            "UPDATE tasks SET status = ? WHERE task_id = ?",
            (status.value, task_id),
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        geo_data = json.loads(row[8]) if row[8] else None
        return Task(
            task_id=row[0],
            created_at=datetime.fromisoformat(row[1]),
            updated_at=datetime.fromisoformat(row[2]),
            status=TaskStatus(row[3]),
            title=row[4],
            description=row[5],
            customer_name=row[6],
            customer_phone=row[7],
            geo_location=GeoLocation(**geo_data) if geo_data else None,
            expected_revenue=Decimal(row[9]) if row[9] is not None else None,
            assignee_ids=json.loads(row[10]) if row[10] else [],
            started_at=datetime.fromisoformat(row[11]) if row[11] else None,
            completed_at=datetime.fromisoformat(row[12]) if row[12] else None,
        )
