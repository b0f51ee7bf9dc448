"""StallSweeper -- 停滞任务恢复

由外部定时器触发（GET/POST /api/cron/tasks 或 `python -m relayagent.gateway sweep`）。

- running 且 updated_at 早于阈值：重新触发执行链
- pending / waiting 且 updated_at 早于阈值：重新规划后执行
  （已有步骤的 pending / waiting 任务直接回到 running 并触发执行链）
- planning 且 updated_at 早于 max(停滞阈值, 步骤租约)：重新规划

重启前以观察到的 (status, updated_at) 做条件 touch，
重叠的两轮 sweep 对同一任务只会有一轮生效。
"""

from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from relayagent.core.clock import utc_now
from relayagent.core.config import EngineConfig
from relayagent.core.models import ActorType, Task, TaskStatus
from relayagent.core.store import StoreGroup

from .chain import ChainScheduler
from .transitions import start_planned_task

log = structlog.get_logger()

_REPLAN_STATES = (TaskStatus.PENDING, TaskStatus.WAITING)


@dataclass
class SweepReport:
    stalled: int = 0
    waiting: int = 0
    restarted: int = 0
    task_ids: list[str] = field(default_factory=list)


class StallSweeper:
    """停滞任务扫描器"""

    def __init__(
        self,
        store_group: StoreGroup,
        scheduler: ChainScheduler,
        config: EngineConfig,
    ) -> None:
        self._stores = store_group
        self._scheduler = scheduler
        self._config = config

    async def sweep(self) -> SweepReport:
        now = utc_now()
        cutoff = now - timedelta(seconds=self._config.stall_threshold_s)
        limit = self._config.sweep_batch_limit
        task_store = self._stores.task_store

        stalled = await task_store.list_stale([TaskStatus.RUNNING], cutoff, limit)
        # planning 中的 planner 可能仍在预算内调用模型，按租约而不是停滞阈值判定
        planning_cutoff = now - timedelta(
            seconds=max(self._config.stall_threshold_s, self._config.step_lease_s)
        )
        waiting = [
            *await task_store.list_stale(_REPLAN_STATES, cutoff, limit),
            *await task_store.list_stale([TaskStatus.PLANNING], planning_cutoff, limit),
        ]
        waiting = sorted(waiting, key=lambda t: t.updated_at)[:limit]
        report = SweepReport(stalled=len(stalled), waiting=len(waiting))

        seen: set[str] = set()
        for task in [*stalled, *waiting]:
            if task.task_id in seen:
                continue
            seen.add(task.task_id)
            if await self._restart(task):
                report.restarted += 1
                report.task_ids.append(task.task_id)

        log.info(
            "stall_sweep_completed",
            stalled=report.stalled,
            waiting=report.waiting,
            restarted=report.restarted,
        )
        return report

    async def _restart(self, task: Task) -> bool:
        now = utc_now()
        action = "plan"
        async with self._stores.transaction():
            claimed = await self._stores.task_store.touch_if_unchanged(
                task.task_id,
                status=task.status,
                observed_updated_at=task.updated_at,
                updated_at=now,
            )
            if not claimed:
                log.debug("stall_sweep_skipped", task_id=task.task_id)
                return False

            if task.status == TaskStatus.RUNNING:
                action = "run"
            elif task.status in _REPLAN_STATES and await start_planned_task(
                self._stores, task.task_id, ActorType.SWEEPER, now, reason="stall recovery"
            ):
                # 计划已落盘，只是没有进入 running
                action = "run"

        log.info(
            "stall_sweep_restart",
            task_id=task.task_id,
            status=task.status.value,
            action=action,
            last_update=task.updated_at.isoformat(),
        )
        if action == "run":
            self._scheduler.schedule_run(task.task_id)
        else:
            self._scheduler.schedule_plan(task.task_id)
        return True
