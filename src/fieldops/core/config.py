"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、附件目录、现场事件校验阈值等可配置常量。
"""

import os
from decimal import Decimal
from pathlib import Path

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("FIELDOPS_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "FIELDOPS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "fieldops.db"),
    )


def get_attachments_dir() -> Path:
    """获取附件文件存储目录"""
    return Path(
        os.environ.get(
            "FIELDOPS_ATTACHMENTS_DIR",
            str(_get_base_dir() / "attachments"),
        )
    )


# 单次请求最多附件数
MAX_ATTACHMENTS: int = int(os.environ.get("FIELDOPS_MAX_ATTACHMENTS", "10"))

# 备注长度上限
CHECK_IN_NOTES_MAX_LENGTH: int = 500
CHECK_OUT_NOTES_MAX_LENGTH: int = 1000

# 收款金额上限（VND）
PAYMENT_AMOUNT_MAX: Decimal = Decimal("10000000000")

# 发票仅接受图片
INVOICE_MIME_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png", "image/heic"})

# 未认领附件的回收宽限期（秒）
ORPHAN_GRACE_SECONDS: int = int(os.environ.get("FIELDOPS_ORPHAN_GRACE_S", "86400"))

# payment 编辑原因最短长度
EDIT_REASON_MIN_LENGTH: int = 10

# 评论长度与附件数上限
COMMENT_MAX_LENGTH: int = 5000
COMMENT_MAX_FILES: int = 5

# 员工报表默认时区（按本地日期统计出勤天数）
REPORT_TIMEZONE: str = os.environ.get("FIELDOPS_REPORT_TIMEZONE", "Asia/Ho_Chi_Minh")


class FieldEventPolicy(BaseModel):
    """现场事件校验策略（距离 / 精度 / 收款对账 / 动态流去重）"""

    distance_warning_m: float = Field(
        default=100.0, gt=0, allow_inf_nan=False, description="距离告警阈值（米）"
    )
    accuracy_warning_m: float = Field(
        default=50.0, gt=0, allow_inf_nan=False, description="GPS 精度告警阈值（米）"
    )
    payment_mismatch_ratio: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        allow_inf_nan=False,
        description="收款差异比例阈值",
    )
    feed_dedup_window_s: float = Field(
        default=60.0, ge=0, allow_inf_nan=False, description="动态流去重窗口（秒）"
    )


def load_field_event_policy() -> FieldEventPolicy:
    """从环境变量加载 FieldEventPolicy

    环境变量映射:
        FIELDOPS_GEO_DISTANCE_WARNING_M -> distance_warning_m (默认 100)
        FIELDOPS_GEO_ACCURACY_WARNING_M -> accuracy_warning_m (默认 50)
        FIELDOPS_PAYMENT_MISMATCH_RATIO -> payment_mismatch_ratio (默认 0.10)
        FIELDOPS_FEED_DEDUP_WINDOW_S -> feed_dedup_window_s (默认 60)

    每个字段单独校验：无法解析或违反约束（负数、NaN 等）的值
    记录告警并回退默认值，不阻塞启动。
    """
    kwargs: dict = {}
    env_map = {
        "FIELDOPS_GEO_DISTANCE_WARNING_M": "distance_warning_m",
        "FIELDOPS_GEO_ACCURACY_WARNING_M": "accuracy_warning_m",
        "FIELDOPS_PAYMENT_MISMATCH_RATIO": "payment_mismatch_ratio",
        "FIELDOPS_FEED_DEDUP_WINDOW_S": "feed_dedup_window_s",
    }
    for env_var, field_name in env_map.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            checked = FieldEventPolicy.model_validate({field_name: val})
        except PydanticValidationError as e:
            log.warning(
                "invalid_policy_config",
                env_var=env_var,
                value=val,
                error=e.errors(include_url=False)[0]["msg"],
            )
            continue
        kwargs[field_name] = getattr(checked, field_name)

    return FieldEventPolicy(**kwargs)
