"""TaskService -- 面向用户的任务创建与查询

创建任务：写入 Task + TASK_CREATED 事件（同一事务），随后触发规划。
查询/删除均按 user_id 隔离，他人任务视为不存在。
"""

from dataclasses import dataclass

import structlog
from relayagent.core.clock import utc_now
from relayagent.core.config import DEFAULT_MAX_STEPS, MAX_STEPS_LIMIT, TITLE_MAX_LENGTH
from relayagent.core.exceptions import TaskNotFoundError
from relayagent.core.models import (
    ActorType,
    Event,
    EventType,
    Step,
    Task,
    TaskCreatedPayload,
    TaskStatus,
)
from relayagent.core.store import StoreGroup
from ulid import ULID

from .chain import ChainScheduler

log = structlog.get_logger()


@dataclass
class TaskDetail:
    task: Task
    steps: list[Step]
    events: list[Event]


@dataclass
class TaskSummary:
    task: Task
    step_count: int
    completed_steps: int
    failed_steps: int


class TaskService:
    """任务服务"""

    def __init__(self, store_group: StoreGroup, scheduler: ChainScheduler) -> None:
        self._stores = store_group
        self._scheduler = scheduler

    async def create_task(
        self,
        user_id: str,
        goal: str,
        title: str | None = None,
        max_steps: int | None = None,
    ) -> Task:
        """创建任务并触发规划

        Args:
            user_id: 所属用户
            goal: 自由文本目标（调用方保证非空）
            title: 短标题，缺省取 goal 前 80 个字符
            max_steps: 步骤上限，缺省 20，超过上限按上限处理
        """
        goal = goal.strip()
        now = utc_now()
        task = Task(
            task_id=str(ULID()),
            user_id=user_id,
            goal=goal,
            title=(title or "").strip() or goal[:TITLE_MAX_LENGTH],
            status=TaskStatus.PENDING,
            max_steps=min(max_steps or DEFAULT_MAX_STEPS, MAX_STEPS_LIMIT),
            created_at=now,
            updated_at=now,
        )

        async with self._stores.transaction():
            await self._stores.task_store.create_task(task)
            await self._stores.event_store.record(
                task.task_id,
                EventType.TASK_CREATED,
                ActorType.USER,
                TaskCreatedPayload(
                    title=task.title,
                    user_id=user_id,
                    max_steps=task.max_steps,
                    goal_length=len(goal),
                ),
                now,
            )

        log.info(
            "task_created",
            task_id=task.task_id,
            user_id=user_id,
            max_steps=task.max_steps,
        )
        self._scheduler.schedule_plan(task.task_id)
        return task

    async def get_task_detail(self, task_id: str, user_id: str | None = None) -> TaskDetail:
        task = await self._stores.task_store.get_task(task_id, user_id=user_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        steps = await self._stores.step_store.list_steps(task_id)
        events = await self._stores.event_store.get_events_for_task(task_id)
        return TaskDetail(task=task, steps=steps, events=events)

    async def list_tasks(
        self,
        user_id: str,
        status: TaskStatus | None = None,
    ) -> list[TaskSummary]:
        tasks = await self._stores.task_store.list_tasks(
            user_id=user_id,
            status=status.value if status else None,
        )
        counts = await self._stores.step_store.step_counts(t.task_id for t in tasks)
        summaries = []
        for t in tasks:
            total, completed, failed = counts.get(t.task_id, (0, 0, 0))
            summaries.append(
                TaskSummary(
                    task=t,
                    step_count=total,
                    completed_steps=completed,
                    failed_steps=failed,
                )
            )
        return summaries

    async def delete_task(self, task_id: str, user_id: str | None = None) -> None:
        """删除任务及其步骤、事件；进行中的 cycle 会因任务不存在而空转"""
        task = await self._stores.task_store.get_task(task_id, user_id=user_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        async with self._stores.transaction():
            deleted = await self._stores.task_store.delete_task(task_id)
        if not deleted:
            raise TaskNotFoundError(task_id)
        log.info("task_deleted", task_id=task_id, status=task.status.value)
