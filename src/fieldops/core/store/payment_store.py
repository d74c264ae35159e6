"""PaymentStore SQLite 实现

不自动提交事务；收款记录与 PAYMENT_COLLECTED / PAYMENT_UPDATED 在同一事务内写入。
"""

from datetime import datetime
from decimal import Decimal

import aiosqlite

from ..models.payment import Payment

_COLUMNS = (
    "payment_id, task_id, amount, currency, collected_by, collected_at, "
    "invoice_attachment_id, notes"
)


class SqlitePaymentStore:
    """PaymentStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_payment(self, payment: Payment) -> None:
        await self._conn.execute(
            f"INSERT INTO payments ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                payment.payment_id,
                payment.task_id,
                str(payment.amount),
                payment.currency,
                payment.collected_by,
                payment.collected_at.isoformat(),
                payment.invoice_attachment_id,
                payment.notes,
            ),
        )

    async def get_payment(self, payment_id: str) -> Payment | None:
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM payments WHERE payment_id = ?",
            (payment_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_payment(row) if row else None

    async def list_for_task(self, task_id: int) -> list[Payment]:
        """查询任务的收款记录，按 collected_at 倒序"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM payments WHERE task_id = ? ORDER BY collected_at DESC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_payment(row) for row in rows]

    async def update_payment(
        self,
        payment_id: str,
        amount: Decimal,
        notes: str | None,
        invoice_attachment_id: str | None,
    ) -> None:
        """更正收款记录（调用方需同时追加 PAYMENT_UPDATED）"""
        await self._conn.execute(
            """
            UPDATE payments
            SET amount = ?, notes = ?, invoice_attachment_id = ?
            WHERE payment_id = ?
            """,
            (str(amount), notes, invoice_attachment_id, payment_id),
        )

    @staticmethod
    def _row_to_payment(row: aiosqlite.Row) -> Payment:
        return Payment(
            payment_id=row[0],
            task_id=row[1],
            amount=Decimal(row[2]),
            currency=row[3],
            collected_by=row[4],
            collected_at=datetime.fromisoformat(row[5]),
            invoice_attachment_id=row[6],
            notes=row[7],
        )
