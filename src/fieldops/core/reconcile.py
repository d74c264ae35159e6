"""收款对账模块

比较实收金额与预期收入，差异超过阈值时标记 mismatch。
mismatch 只是建议性告警，不阻塞 check-out，也不阻止收款记录落盘。
"""

from decimal import Decimal

from pydantic import BaseModel

DEFAULT_MISMATCH_RATIO = Decimal("0.10")


class PaymentReconciliation(BaseModel):
    """对账结果"""

    mismatch: bool = False
    difference_abs: Decimal = Decimal("0")
    warning: str | None = None


def mismatch_warning(expected: Decimal, collected: Decimal, difference: Decimal) -> str:
    direction = "above" if collected > expected else "below"
    return (
        f"payment mismatch: collected amount {collected:f} is {difference:f} {direction} "
        f"expected revenue {expected:f}"
    )


def reconcile(
    expected_revenue: Decimal | None,
    collected_amount: Decimal,
    *,
    ratio: Decimal = DEFAULT_MISMATCH_RATIO,
) -> PaymentReconciliation:
    """对账

    mismatch 条件：expected_revenue 已设置且
    |collected - expected| / expected > ratio（恰好等于阈值不算）。

    expected_revenue 为 0 时无法按比例比较，实收非 0 即视为 mismatch。

    Args:
        expected_revenue: 预期收入，None 表示未设置（永不 mismatch）
        collected_amount: 实收金额
        ratio: 差异比例阈值

    Returns:
        PaymentReconciliation
    """
    if expected_revenue is None:
        return PaymentReconciliation()

    expected = Decimal(expected_revenue)
    collected = Decimal(collected_amount)
    difference = abs(collected - expected)

    if expected == 0:
        mismatch = difference > 0
    else:
        # 乘法比较，避免除法引入的精度误差
        mismatch = difference > expected * ratio

    return PaymentReconciliation(
        mismatch=mismatch,
        difference_abs=difference,
        warning=mismatch_warning(expected, collected, difference) if mismatch else None,
    )
