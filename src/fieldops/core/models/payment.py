"""Payment Domain Model

当前版本每个任务最多一条“当前”收款记录（check-out 时创建）。
admin 更正会更新记录并追加 PAYMENT_UPDATED 审计事件。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class Payment(BaseModel):
    """收款记录"""

    payment_id: str = Field(description="唯一标识，ULID 格式")
    task_id: int = Field(description="关联的 Task ID")
    amount: Decimal = Field(gt=0, description="收款金额")
    currency: str = Field(default="VND", description="币种")
    collected_by: str = Field(description="收款人 user_id")
    collected_at: datetime = Field(description="收款时间")
    invoice_attachment_id: str | None = Field(default=None, description="发票附件 ID")
    notes: str | None = Field(default=None, description="备注")


class PaymentSummary(BaseModel):
    """任务收款汇总"""

    expected_revenue: Decimal | None = None
    total_collected: Decimal = Decimal("0")
    has_payment: bool = False
