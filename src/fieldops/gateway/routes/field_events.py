"""现场事件路由 -- check-in / check-out

POST /v1/task/{task_id}/check-in: multipart，READY -> IN_PROGRESS
POST /v1/task/{task_id}/check-out: multipart，IN_PROGRESS -> COMPLETED，可附带收款
- 403: 未被分配
- 404: 任务不存在
- 409: 状态不符 / 并发流转落败
- 422: 坐标非法、收款字段组合错误、发票类型不符、文件过多、备注过长
"""

from fastapi import APIRouter, Depends, File, Form, Header, UploadFile
from pydantic import ValidationError as PydanticValidationError

from fieldops.core.config import FieldEventPolicy
from fieldops.core.exceptions import ValidationError
from fieldops.core.models import Actor, AttachmentUpload, CheckInRequest, CheckOutRequest

from ..deps import get_actor, get_policy, get_store_group
from ..services.field_event_service import FieldEventHandler, FieldEventResult

router = APIRouter()


async def read_upload(upload: UploadFile) -> AttachmentUpload:
    """读取上传文件为 AttachmentUpload"""
    content = await upload.read()
    return AttachmentUpload(
        filename=upload.filename or "",
        mime_type=upload.content_type or "application/octet-stream",
        content=content,
    )


def validation_message(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def _result_body(result: FieldEventResult, include_payment: bool) -> dict:
    body = {
        "task": result.task.model_dump(mode="json"),
        "warnings": result.warnings,
    }
    if include_payment:
        body["payment"] = result.payment.model_dump(mode="json") if result.payment else None
    return body


@router.post("/v1/task/{task_id}/check-in")
async def check_in(
    task_id: int,
    latitude: float = Form(...),
    longitude: float = Form(...),
    accuracy: float | None = Form(default=None),
    notes: str | None = Form(default=None),
    files: list[UploadFile] | None = File(default=None),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
    policy: FieldEventPolicy = Depends(get_policy),
):
    """check-in：记录到场位置与证据，任务进入 IN_PROGRESS"""
    uploads = [await read_upload(f) for f in files or []]
    try:
        request = CheckInRequest(
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            notes=notes,
            files=uploads,
        )
    except PydanticValidationError as e:
        raise ValidationError(validation_message(e)) from e

    handler = FieldEventHandler(store_group, policy)
    result = await handler.check_in(task_id, actor, request, idempotency_key=idempotency_key)
    return _result_body(result, include_payment=False)


@router.post("/v1/task/{task_id}/check-out")
async def check_out(
    task_id: int,
    latitude: float = Form(...),
    longitude: float = Form(...),
    accuracy: float | None = Form(default=None),
    notes: str | None = Form(default=None),
    files: list[UploadFile] | None = File(default=None),
    payment_collected: bool = Form(default=False, alias="paymentCollected"),
    payment_amount: str | None = Form(default=None, alias="paymentAmount"),
    payment_notes: str | None = Form(default=None, alias="paymentNotes"),
    invoice_file: UploadFile | None = File(default=None, alias="invoiceFile"),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
    policy: FieldEventPolicy = Depends(get_policy),
):
    """check-out：记录离场位置、证据与收款，任务进入 COMPLETED"""
    uploads = [await read_upload(f) for f in files or []]
    invoice = await read_upload(invoice_file) if invoice_file is not None else None
    try:
        request = CheckOutRequest(
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            notes=notes,
            files=uploads,
            payment_collected=payment_collected,
            payment_amount=payment_amount or None,
            payment_notes=payment_notes or None,
            invoice_file=invoice,
        )
    except PydanticValidationError as e:
        raise ValidationError(validation_message(e)) from e

    handler = FieldEventHandler(store_group, policy)
    result = await handler.check_out(task_id, actor, request, idempotency_key=idempotency_key)
    return _result_body(result, include_payment=True)
