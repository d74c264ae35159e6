"""收款对账测试

测试内容：
1. 未设置预期收入永不 mismatch
2. 10% 边界（恰好 10% 不算）
3. 超收 / 少收告警文案
4. 预期收入为 0 的处理
"""

from decimal import Decimal

import pytest
from fieldops.core.reconcile import reconcile


class TestReconcile:
    def test_no_expected_revenue_never_mismatch(self):
        result = reconcile(None, Decimal("999999"))
        assert result.mismatch is False
        assert result.warning is None

    def test_exact_match(self):
        result = reconcile(Decimal("500000"), Decimal("500000"))
        assert result.mismatch is False
        assert result.difference_abs == Decimal("0")

    @pytest.mark.parametrize("collected", ["110", "90", "110.00", "90.00"])
    def test_exactly_ten_percent_is_not_mismatch(self, collected: str):
        result = reconcile(Decimal("100"), Decimal(collected))
        assert result.mismatch is False
        assert result.difference_abs == Decimal("10")

    @pytest.mark.parametrize("collected", ["110.01", "89.99"])
    def test_just_over_ten_percent_is_mismatch(self, collected: str):
        result = reconcile(Decimal("100"), Decimal(collected))
        assert result.mismatch is True

    def test_fifteen_percent_over_warning(self):
        result = reconcile(Decimal("100000"), Decimal("115000"))
        assert result.mismatch is True
        assert result.difference_abs == Decimal("15000")
        assert result.warning == (
            "payment mismatch: collected amount 115000 is 15000 above expected revenue 100000"
        )

    def test_under_collected_warning(self):
        result = reconcile(Decimal("200000"), Decimal("150000"))
        assert result.mismatch is True
        assert "below expected revenue 200000" in result.warning

    def test_zero_expected_with_collection_is_mismatch(self):
        result = reconcile(Decimal("0"), Decimal("1000"))
        assert result.mismatch is True
        assert result.difference_abs == Decimal("1000")

    def test_zero_expected_zero_collected(self):
        assert reconcile(Decimal("0"), Decimal("0")).mismatch is False

    def test_custom_ratio(self):
        assert reconcile(Decimal("100"), Decimal("104"), ratio=Decimal("0.05")).mismatch is False
        assert reconcile(Decimal("100"), Decimal("106"), ratio=Decimal("0.05")).mismatch is True
