"""动态流投影模块

对 Activity 序列做只读的展示变换：过滤不重要动作 + 折叠短时间内的重复动作。
纯函数，不写回日志，也不改变存储顺序。
"""

from collections.abc import Iterable, Sequence

from pydantic import BaseModel

from .models.activity import Activity
from .models.enums import ActivityAction

DEFAULT_DEDUP_WINDOW_SECONDS: float = 60.0

UNIMPORTANT_ACTIONS: frozenset[ActivityAction] = frozenset(
    {
        ActivityAction.ATTACHMENT_DELETED,
        ActivityAction.TASK_ATTACHMENTS_UPLOADED,
    }
)


def project(
    activities: Sequence[Activity],
    hide_unimportant: bool = False,
    *,
    window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
    unimportant_actions: Iterable[ActivityAction] = UNIMPORTANT_ACTIONS,
) -> list[Activity]:
    """生成展示用动态流

    1. hide_unimportant 时先剔除 unimportant_actions
    2. 若与上一条“保留”记录 action 相同且时间差 <= window_seconds，则折叠

    先过滤再折叠，保证 project(project(x)) == project(x)。
    输入可以是正序或倒序，时间差取绝对值。
    """
    hidden = frozenset(unimportant_actions) if hide_unimportant else frozenset()

    kept: list[Activity] = []
    for activity in activities:
        if activity.action in hidden:
            continue
        if kept:
            previous = kept[-1]
            delta = abs((activity.created_at - previous.created_at).total_seconds())
            if previous.action == activity.action and delta <= window_seconds:
                continue
        kept.append(activity)
    return kept


class AttachmentRefSummary(BaseModel):
    """payload 中附件引用的可用性汇总"""

    available_ids: list[str]
    missing_count: int


def referenced_attachment_ids(activity: Activity) -> list[str]:
    """提取 payload 中引用的附件 ID（attachments 列表 + 发票附件）"""
    ids = [
        ref["id"]
        for ref in activity.payload.get("attachments", [])
        if isinstance(ref, dict) and ref.get("id")
    ]
    invoice_id = activity.payload.get("invoice_attachment_id")
    if invoice_id:
        ids.append(invoice_id)
    return ids


def summarize_attachment_refs(
    activity: Activity,
    existing_ids: Iterable[str],
) -> AttachmentRefSummary:
    """对比引用与仍存在的附件，得出“N 个文件已删除”占位信息

    悬空引用是正常情况，不视为数据完整性错误。
    """
    existing = set(existing_ids)
    referenced = referenced_attachment_ids(activity)
    available = [attachment_id for attachment_id in referenced if attachment_id in existing]
    return AttachmentRefSummary(
        available_ids=available,
        missing_count=len(referenced) - len(available),
    )
