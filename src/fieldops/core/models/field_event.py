"""Check-in / Check-out 请求模型

multipart 表单字段统一转换为这里的模型后再进入处理流程，
校验失败在任何副作用之前被拒绝（422）。
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..config import (
    CHECK_IN_NOTES_MAX_LENGTH,
    CHECK_OUT_NOTES_MAX_LENGTH,
    INVOICE_MIME_TYPES,
    MAX_ATTACHMENTS,
    PAYMENT_AMOUNT_MAX,
)
from .attachment import AttachmentUpload


class CheckInRequest(BaseModel):
    """check-in 请求"""

    latitude: float = Field(ge=-90, le=90, description="纬度")
    longitude: float = Field(ge=-180, le=180, description="经度")
    accuracy: float | None = Field(default=None, ge=0, description="GPS 精度（米）")
    notes: str | None = Field(
        default=None,
        max_length=CHECK_IN_NOTES_MAX_LENGTH,
        description="备注",
    )
    files: list[AttachmentUpload] = Field(
        default_factory=list,
        max_length=MAX_ATTACHMENTS,
        description="证据附件",
    )

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class CheckOutRequest(CheckInRequest):
    """check-out 请求（含可选收款信息）"""

    notes: str | None = Field(
        default=None,
        max_length=CHECK_OUT_NOTES_MAX_LENGTH,
        description="备注",
    )
    payment_collected: bool = Field(default=False, description="是否已收款")
    payment_amount: Decimal | None = Field(
        default=None,
        gt=0,
        le=PAYMENT_AMOUNT_MAX,
        description="收款金额",
    )
    payment_notes: str | None = Field(default=None, max_length=500, description="收款备注")
    invoice_file: AttachmentUpload | None = Field(default=None, description="发票照片")

    @field_validator("invoice_file")
    @classmethod
    def _check_invoice_mime(cls, value: AttachmentUpload | None) -> AttachmentUpload | None:
        if value is not None and value.mime_type.lower() not in INVOICE_MIME_TYPES:
            raise ValueError("invoice must be a JPEG, PNG or HEIC image")
        return value

    @model_validator(mode="after")
    def _check_payment_fields(self) -> "CheckOutRequest":
        if self.payment_collected and self.payment_amount is None:
            raise ValueError("paymentAmount is required when paymentCollected is true")
        if not self.payment_collected and self.payment_amount is not None:
            raise ValueError("paymentAmount requires paymentCollected")
        return self
