"""任务状态流转 -- 条件更新 + STATE_TRANSITION 事件

必须在写事务内调用。先读取当前状态，校验属于 allowed_from 且流转合法，
再以读到的状态做 compare-and-swap；未命中返回 None，不产生任何写入。
"""

from collections.abc import Iterable
from datetime import datetime

from relayagent.core.models import (
    ActorType,
    EventType,
    StateTransitionPayload,
    TaskStatus,
    validate_transition,
)
from relayagent.core.store import StoreGroup


async def transition_task(
    stores: StoreGroup,
    task_id: str,
    allowed_from: TaskStatus | Iterable[TaskStatus],
    to_status: TaskStatus,
    actor: ActorType,
    now: datetime,
    reason: str = "",
    **fields,
) -> TaskStatus | None:
    """执行一次状态流转

    Returns:
        流转前的状态；未命中（任务不存在、状态不符或被并发修改）时返回 None
    """
    allowed = {allowed_from} if isinstance(allowed_from, TaskStatus) else set(allowed_from)

    current = await stores.task_store.get_task(task_id)
    if current is None or current.status not in allowed:
        return None
    if not validate_transition(current.status, to_status):
        return None

    hit = await stores.task_store.update_status(
        task_id,
        expected=current.status,
        new_status=to_status,
        updated_at=now,
        **fields,
    )
    if not hit:
        return None

    await stores.event_store.record(
        task_id,
        EventType.STATE_TRANSITION,
        actor,
        StateTransitionPayload(
            from_status=current.status,
            to_status=to_status,
            reason=reason,
        ),
        now,
    )
    return current.status


async def start_planned_task(
    stores: StoreGroup,
    task_id: str,
    actor: ActorType,
    now: datetime,
    reason: str = "plan recovered",
) -> bool:
    """已有步骤却停在 pending / waiting 的任务直接进入 running

    pending 经 planning 过渡，保持 pending -> planning -> running 的流转顺序。
    必须在写事务内调用；没有步骤或状态不符时返回 False。
    """
    if await stores.step_store.count_steps(task_id) == 0:
        return False
    if await transition_task(
        stores, task_id, TaskStatus.PENDING, TaskStatus.PLANNING, actor, now, reason
    ) is not None:
        return await transition_task(
            stores, task_id, TaskStatus.PLANNING, TaskStatus.RUNNING, actor, now, reason
        ) is not None
    return await transition_task(
        stores, task_id, TaskStatus.WAITING, TaskStatus.RUNNING, actor, now, reason
    ) is not None
