"""收款路由

GET /v1/task/{task_id}/payments: 收款记录 + 汇总
PUT /v1/payment/{payment_id}: admin 更正金额 / 备注 / 发票（需 editReason）
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, UploadFile

from fieldops.core.config import PAYMENT_AMOUNT_MAX
from fieldops.core.models import Actor

from ..deps import get_actor, get_store_group
from ..services.payment_service import PaymentService
from .field_events import read_upload

router = APIRouter()


@router.get("/v1/task/{task_id}/payments")
async def list_payments(
    task_id: int,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """查询任务收款（admin 或执行人）"""
    payments, summary = await PaymentService(store_group).list_for_task(task_id, actor)
    return {
        "payments": [p.model_dump(mode="json") for p in payments],
        "summary": summary.model_dump(mode="json"),
    }


@router.put("/v1/payment/{payment_id}")
async def update_payment(
    payment_id: str,
    edit_reason: str = Form(..., alias="editReason"),
    amount: Decimal | None = Form(default=None, gt=0, le=PAYMENT_AMOUNT_MAX),
    notes: str | None = Form(default=None, max_length=500),
    invoice_file: UploadFile | None = File(default=None, alias="invoiceFile"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """更正收款记录并追加 PAYMENT_UPDATED"""
    invoice = await read_upload(invoice_file) if invoice_file is not None else None
    payment = await PaymentService(store_group).update_payment(
        payment_id,
        actor,
        edit_reason=edit_reason,
        amount=amount,
        notes=notes,
        invoice_file=invoice,
    )
    return {"payment": payment.model_dump(mode="json")}
