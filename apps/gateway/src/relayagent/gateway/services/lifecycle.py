"""LifecycleController -- pause / resume / cancel

每个操作：读取任务 -> 校验流转合法 -> 以读到的状态做条件更新。
非法请求抛 InvalidTransitionError 且不产生任何写入；
校验之后状态被并发修改时抛 TaskStatusConflictError。
"""

import structlog
from relayagent.core.clock import utc_now
from relayagent.core.config import EngineConfig
from relayagent.core.exceptions import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStatusConflictError,
)
from relayagent.core.models import (
    PAUSABLE_STATES,
    TERMINAL_STATES,
    ActorType,
    Task,
    TaskStatus,
)
from relayagent.core.store import StoreGroup

from .chain import ChainScheduler
from .transitions import transition_task

log = structlog.get_logger()

DEFAULT_PAUSE_REASON = "User paused"


class LifecycleController:
    """任务生命周期控制"""

    def __init__(
        self,
        store_group: StoreGroup,
        scheduler: ChainScheduler,
        config: EngineConfig,
    ) -> None:
        self._stores = store_group
        self._scheduler = scheduler
        self._config = config

    async def _load(self, task_id: str, user_id: str | None) -> Task:
        task = await self._stores.task_store.get_task(task_id, user_id=user_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def _swap(
        self,
        task: Task,
        to_status: TaskStatus,
        reason: str,
        **fields,
    ) -> None:
        """在调用方的写事务内，以读到的状态做条件更新"""
        previous = await transition_task(
            self._stores,
            task.task_id,
            allowed_from=task.status,
            to_status=to_status,
            actor=ActorType.USER,
            now=utc_now(),
            reason=reason,
            **fields,
        )
        if previous is None:
            raise TaskStatusConflictError(task.task_id, task.status)

    async def _transition(
        self,
        task: Task,
        to_status: TaskStatus,
        reason: str,
        **fields,
    ) -> None:
        async with self._stores.transaction():
            await self._swap(task, to_status, reason, **fields)

    async def pause(
        self,
        task_id: str,
        user_id: str | None = None,
        reason: str | None = None,
    ) -> Task:
        """暂停任务；进行中的步骤不会被打断"""
        task = await self._load(task_id, user_id)
        if task.status not in PAUSABLE_STATES:
            raise InvalidTransitionError(task_id, "pause", task.status)

        pause_reason = reason or DEFAULT_PAUSE_REASON
        await self._transition(task, TaskStatus.PAUSED, pause_reason, pause_reason=pause_reason)
        log.info("task_paused", task_id=task_id, reason=pause_reason)
        return await self._load(task_id, user_id)

    async def resume(self, task_id: str, user_id: str | None = None) -> Task:
        """恢复任务并重新触发执行链；尚无步骤时回到 pending 重新规划"""
        task = await self._load(task_id, user_id)
        if task.status != TaskStatus.PAUSED:
            raise InvalidTransitionError(
                task_id,
                "resume",
                task.status,
                reason=f"Can only resume paused tasks (current status '{task.status}')",
            )

        # 步骤计数与状态更新在同一写事务内：规划中被暂停的 planner 会在写锁下落盘步骤
        async with self._stores.transaction():
            has_steps = await self._stores.step_store.count_steps(task_id) > 0
            target = TaskStatus.RUNNING if has_steps else TaskStatus.PENDING
            await self._swap(task, target, "resumed", pause_reason=None)

        if has_steps:
            self._scheduler.schedule_run(task_id)
        else:
            self._scheduler.schedule_plan(task_id)
        log.info("task_resumed", task_id=task_id, status=target.value)
        return await self._load(task_id, user_id)

    async def cancel(self, task_id: str, user_id: str | None = None) -> Task:
        """取消任务；之后的 cycle 都是空操作"""
        task = await self._load(task_id, user_id)
        if task.status in TERMINAL_STATES:
            raise InvalidTransitionError(task_id, "cancel", task.status)

        now = utc_now()
        await self._transition(
            task,
            TaskStatus.CANCELLED,
            "cancelled",
            completed_at=now,
            pause_reason=None,
        )
        log.info("task_cancelled", task_id=task_id)
        return await self._load(task_id, user_id)
