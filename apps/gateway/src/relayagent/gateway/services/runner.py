"""TaskRunner -- 把 Planner / Executor 与 Chain Scheduler 连接起来

run_cycle: 执行一个 cycle，还有工作时链式触发下一个（重试按指数退避延迟）
plan: 规划任务，进入 running 后链式触发第一个 cycle
"""

import structlog
from relayagent.core.config import EngineConfig

from .chain import ChainScheduler
from .executor import CycleResult, StepExecutor
from .planner import GoalPlanner, PlanOutcome

log = structlog.get_logger()


class TaskRunner:
    """任务驱动器"""

    def __init__(
        self,
        planner: GoalPlanner,
        executor: StepExecutor,
        scheduler: ChainScheduler,
        config: EngineConfig,
    ) -> None:
        self._planner = planner
        self._executor = executor
        self._scheduler = scheduler
        self._config = config

    async def run_cycle(self, task_id: str) -> CycleResult:
        with structlog.contextvars.bound_contextvars(trace_id=f"trace-{task_id}"):
            result = await self._executor.run_cycle(task_id)
            if result.more_work:
                delay_s = (
                    self._config.retry_delay_s(result.retry_count)
                    if result.retry
                    else self._config.chain_delay_s
                )
                log.debug("chain_next_cycle", task_id=task_id, delay_s=delay_s)
                self._scheduler.schedule_run(task_id, delay_s)
            return result

    async def plan(self, task_id: str) -> PlanOutcome:
        with structlog.contextvars.bound_contextvars(trace_id=f"trace-{task_id}"):
            outcome = await self._planner.plan(task_id)
            if outcome.ready_to_run:
                self._scheduler.schedule_run(task_id, self._config.chain_delay_s)
            return outcome
