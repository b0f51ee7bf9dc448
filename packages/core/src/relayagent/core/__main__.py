"""CLI 入口模块 -- python -m relayagent.core <command>

支持的命令：
  init-db                 初始化（或升级）SQLite 数据库表结构
  list-stalled [seconds]  列出 updated_at 超过阈值未更新的活跃任务
"""

import asyncio
import sys
from datetime import timedelta

from .clock import utc_now
from .config import get_db_path, load_engine_config
from .models.enums import TaskStatus

_USAGE = """用法: python -m relayagent.core <command>
命令:
  init-db                 初始化数据库表结构
  list-stalled [seconds]  列出停滞任务（默认阈值取 RELAY_STALL_THRESHOLD_S）"""

# 停滞检查覆盖的状态
_STALL_STATUSES = (
    TaskStatus.RUNNING,
    TaskStatus.PENDING,
    TaskStatus.WAITING,
    TaskStatus.PLANNING,
)


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "list-stalled":
        threshold = load_engine_config().stall_threshold_s
        if len(sys.argv) > 2:
            try:
                threshold = float(sys.argv[2])
            except ValueError:
                print(f"无效的阈值: {sys.argv[2]}")
                sys.exit(1)
        asyncio.run(list_stalled(threshold))
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, list-stalled")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库目录与表结构"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("初始化完成")


async def list_stalled(threshold_s: float, limit: int = 100) -> None:
    """打印停滞任务"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        cutoff = utc_now() - timedelta(seconds=threshold_s)
        tasks = await store_group.task_store.list_stale(_STALL_STATUSES, cutoff, limit)
        if not tasks:
            print(f"没有超过 {threshold_s:g} 秒未更新的任务")
            return
        for task in tasks:
            age = (utc_now() - task.updated_at).total_seconds()
            print(
                f"{task.task_id}  {task.status.value:<8}  "
                f"step={task.current_step_index}  idle={age:.0f}s  {task.title}"
            )
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
