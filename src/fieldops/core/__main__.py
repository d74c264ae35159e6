"""CLI 入口模块 -- python -m fieldops.core <command>

支持的命令：
  rebuild-projections  从 activities 表重建 tasks.status
  purge-orphans        回收超过宽限期仍未被认领的附件
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta

from .config import ORPHAN_GRACE_SECONDS, get_attachments_dir, get_db_path

_COMMANDS = {
    "rebuild-projections": "从 activities 表重建 tasks.status",
    "purge-orphans": "回收超过宽限期仍未被认领的附件",
}


def _print_usage() -> None:
    print("用法: python -m fieldops.core <command>")
    print("命令:")
    for name, description in _COMMANDS.items():
        print(f"  {name:<20} {description}")


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _print_usage()
        sys.exit(1)

    command = sys.argv[1]

    if command == "rebuild-projections":
        asyncio.run(rebuild_projections())
    elif command == "purge-orphans":
        asyncio.run(purge_orphans())
    else:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)


async def rebuild_projections() -> None:
    """执行 Projection 重建"""
    from .projection import rebuild_statuses
    from .store import create_store_group

    db_path = get_db_path()
    attachments_dir = get_attachments_dir()

    print(f"数据库路径: {db_path}")
    print("开始重建 Projection...")

    store_group = await create_store_group(db_path, attachments_dir)

    try:
        activity_count = await rebuild_statuses(store_group)
        print(f"重建完成，处理 {activity_count} 条活动记录")
    finally:
        await store_group.conn.close()


async def purge_orphans() -> None:
    """删除未认领且早于宽限期的附件"""
    from .store import create_store_group

    db_path = get_db_path()
    attachments_dir = get_attachments_dir()
    cutoff = datetime.now(UTC) - timedelta(seconds=ORPHAN_GRACE_SECONDS)

    print(f"数据库路径: {db_path}")
    print(f"附件目录: {attachments_dir}")
    print(f"回收 {cutoff.isoformat()} 之前的未认领附件...")

    store_group = await create_store_group(db_path, attachments_dir)

    try:
        async with store_group.transaction():
            deleted = await store_group.attachment_storage.delete_unclaimed(cutoff)
        print(f"回收完成，删除 {deleted} 个附件")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
