"""Store Protocol 接口定义

定义 TaskStore、StepStore、EventStore 与 NotificationSink 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
SQLite 实现只是默认实现，引擎服务只依赖这些接口。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel

from ..models.enums import ActorType, EventType, TaskStatus
from ..models.event import Event
from ..models.notification import Notification
from ..models.step import Step, StepOutput
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str, user_id: str | None = None) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks(
        self,
        user_id: str | None = None,
        status: str | None = None,
    ) -> list[Task]:
        """查询任务列表，支持按用户、状态筛选"""
        ...

    async def update_status(
        self,
        task_id: str,
        expected: TaskStatus | Iterable[TaskStatus],
        new_status: TaskStatus,
        updated_at: datetime,
        **fields,
    ) -> bool:
        """条件更新任务状态（compare-and-swap）"""
        ...

    async def touch_if_unchanged(
        self,
        task_id: str,
        status: TaskStatus,
        observed_updated_at: datetime,
        updated_at: datetime,
    ) -> bool:
        """仅当 (status, updated_at) 未变化时刷新存活信号"""
        ...

    async def list_stale(
        self,
        statuses: Iterable[TaskStatus],
        cutoff: datetime,
        limit: int,
    ) -> list[Task]:
        """查询停滞任务"""
        ...

    async def delete_task(self, task_id: str) -> bool:
        """删除任务及其步骤、事件"""
        ...


class StepStore(Protocol):
    """Step 存储接口 -- 状态只由 Executor 推进"""

    async def insert_steps(self, steps: list[Step]) -> None:
        """批量写入步骤"""
        ...

    async def list_steps(self, task_id: str) -> list[Step]:
        """按 step_index 正序查询"""
        ...

    async def get_first_open_step(self, task_id: str) -> Step | None:
        """下标最小的未完成步骤"""
        ...

    async def claim_step(self, step_id: str, started_at: datetime) -> bool:
        """原子认领 pending -> running"""
        ...

    async def complete_step(
        self,
        step_id: str,
        output: StepOutput,
        completed_at: datetime,
    ) -> bool:
        """running -> completed"""
        ...

    async def record_failure(
        self,
        step_id: str,
        error: str,
        max_attempts: int,
        now: datetime,
        expected_started_at: datetime | None = None,
    ) -> Step | None:
        """记录一次失败尝试"""
        ...


class EventStore(Protocol):
    """Event 存储接口

    事件表 append-only：只允许插入，不允许更新。
    """

    async def append_event(self, event: Event) -> None:
        """追加事件（append-only）"""
        ...

    async def record(
        self,
        task_id: str,
        event_type: EventType,
        actor: ActorType,
        payload: BaseModel | dict[str, Any],
        ts: datetime,
    ) -> Event:
        """构建并追加一条事件"""
        ...

    async def get_events_for_task(self, task_id: str) -> list[Event]:
        """查询指定任务的所有事件"""
        ...


class NotificationSink(Protocol):
    """通知投递接口"""

    async def send(self, notification: Notification) -> None:
        """投递一条通知"""
        ...
