"""PaymentService -- 收款查询与 admin 更正

更正会直接修改 payments 记录，同时追加 PAYMENT_UPDATED 记录修改前后值，
审计轨迹完整保留在 activities 中。
"""

from datetime import UTC, datetime
from decimal import Decimal

import aiosqlite
import structlog

from fieldops.core.activity_log import ActivityLog
from fieldops.core.config import EDIT_REASON_MIN_LENGTH, INVOICE_MIME_TYPES
from fieldops.core.exceptions import AttachmentStorageError, NotFoundError, ValidationError
from fieldops.core.models import (
    ActivityAction,
    Actor,
    AttachmentUpload,
    Payment,
    PaymentChanges,
    PaymentSummary,
    PaymentUpdatedPayload,
    ValueChange,
    task_topic,
)
from fieldops.core.store import StoreGroup

from .access import load_visible_task, require_admin

log = structlog.get_logger()


class PaymentService:
    """收款业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._activity_log = ActivityLog(store_group.activity_store)

    async def list_for_task(
        self,
        task_id: int,
        actor: Actor,
    ) -> tuple[list[Payment], PaymentSummary]:
        """查询任务收款记录与汇总"""
        task = await load_visible_task(self._stores.task_store, task_id, actor)
        payments = await self._stores.payment_store.list_for_task(task_id)
        summary = PaymentSummary(
            expected_revenue=task.expected_revenue,
            total_collected=sum((p.amount for p in payments), Decimal("0")),
            has_payment=bool(payments),
        )
        return payments, summary

    async def update_payment(
        self,
        payment_id: str,
        actor: Actor,
        *,
        edit_reason: str,
        amount: Decimal | None = None,
        notes: str | None = None,
        invoice_file: AttachmentUpload | None = None,
    ) -> Payment:
        """admin 更正收款

        Args:
            edit_reason: 更正原因（去除首尾空白后至少 EDIT_REASON_MIN_LENGTH 个字符）
            amount: 新金额，None 表示不修改
            notes: 新备注，None 表示不修改，空字符串表示清除
            invoice_file: 替换的发票图片

        Raises:
            ForbiddenError: 非 admin
            NotFoundError: 收款记录不存在
            ValidationError: 原因过短、发票类型不符或没有任何修改
        """
        require_admin(actor, "edit payments")
        reason = edit_reason.strip()
        if len(reason) < EDIT_REASON_MIN_LENGTH:
            raise ValidationError(
                f"edit_reason must be at least {EDIT_REASON_MIN_LENGTH} characters"
            )
        if invoice_file is not None and invoice_file.mime_type.lower() not in INVOICE_MIME_TYPES:
            raise ValidationError("invoice must be a JPEG, PNG or HEIC image")

        payment = await self._stores.payment_store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")

        changes = PaymentChanges()
        new_amount = payment.amount
        if amount is not None and amount != payment.amount:
            new_amount = amount
            changes.amount = ValueChange(old=str(payment.amount), new=str(amount))

        new_notes = payment.notes
        if notes is not None:
            candidate = notes.strip() or None
            if candidate != payment.notes:
                new_notes = candidate
                changes.notes = ValueChange(old=payment.notes, new=candidate)

        if changes.amount is None and changes.notes is None and invoice_file is None:
            raise ValidationError("No changes to apply")

        now = datetime.now(UTC)
        new_invoice_id = payment.invoice_attachment_id
        if invoice_file is not None:
            try:
                async with self._stores.transaction():
                    stored = await self._stores.attachment_storage.store(
                        invoice_file,
                        task_id=payment.task_id,
                        uploaded_by=actor.user_id,
                        now=now,
                    )
            except (OSError, aiosqlite.Error) as e:
                raise AttachmentStorageError("Failed to store invoice") from e
            new_invoice_id = stored.attachment_id
            changes.invoice_replaced = True
            changes.new_invoice_attachment_id = new_invoice_id

        async with self._stores.transaction():
            if invoice_file is not None:
                claimed = await self._stores.attachment_storage.claim([new_invoice_id])
                if claimed != 1:
                    raise AttachmentStorageError("Stored invoice could not be claimed")
            await self._stores.payment_store.update_payment(
                payment_id,
                amount=new_amount,
                notes=new_notes,
                invoice_attachment_id=new_invoice_id,
            )
            await self._activity_log.record(
                task_topic(payment.task_id),
                ActivityAction.PAYMENT_UPDATED,
                PaymentUpdatedPayload(
                    payment_id=payment_id,
                    edit_reason=reason,
                    changes=changes,
                ),
                user_id=actor.user_id,
                created_at=now,
            )

        log.info(
            "payment_updated",
            payment_id=payment_id,
            task_id=payment.task_id,
            amount_changed=changes.amount is not None,
            invoice_replaced=changes.invoice_replaced,
        )
        return payment.model_copy(
            update={
                "amount": new_amount,
                "notes": new_notes,
                "invoice_attachment_id": new_invoice_id,
            }
        )
