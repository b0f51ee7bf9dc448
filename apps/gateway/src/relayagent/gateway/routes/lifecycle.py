"""生命周期路由

POST /api/tasks/{task_id}/pause   {reason?}
POST /api/tasks/{task_id}/resume
POST /api/tasks/{task_id}/cancel
PATCH /api/tasks/{task_id}        {action, pause_reason?}

- 200: 操作成功，返回新状态
- 404: 任务不存在
- 409: 当前状态不允许该操作，或状态被并发修改
"""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from relayagent.core.exceptions import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStatusConflictError,
)
from relayagent.core.models import Task

from ..deps import error_response, get_current_user, get_lifecycle
from ..services.lifecycle import LifecycleController

router = APIRouter()


class PauseRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500, description="暂停原因")


class LifecycleActionRequest(BaseModel):
    action: Literal["pause", "resume", "cancel"]
    pause_reason: str | None = Field(default=None, max_length=500)


class LifecycleResponse(BaseModel):
    task_id: str
    status: str
    pause_reason: str | None = None


async def _apply(coro):
    """执行生命周期操作并把领域异常映射为 HTTP 错误"""
    try:
        task: Task = await coro
    except TaskNotFoundError as e:
        return error_response(
            404, "TASK_NOT_FOUND", f"Task with id {e.task_id} does not exist"
        )
    except InvalidTransitionError as e:
        return error_response(409, e.code, e.reason)
    except TaskStatusConflictError as e:
        return error_response(409, "STATE_CONFLICT", str(e))

    return LifecycleResponse(
        task_id=task.task_id,
        status=task.status.value,
        pause_reason=task.pause_reason,
    )


@router.post("/api/tasks/{task_id}/pause", response_model=LifecycleResponse)
async def pause_task(
    task_id: str,
    body: PauseRequest | None = None,
    user_id: str = Depends(get_current_user),
    lifecycle: LifecycleController = Depends(get_lifecycle),
):
    """暂停 running / planning 任务；进行中的步骤会正常完成"""
    reason = body.reason if body else None
    return await _apply(lifecycle.pause(task_id, user_id, reason))


@router.post("/api/tasks/{task_id}/resume", response_model=LifecycleResponse)
async def resume_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    lifecycle: LifecycleController = Depends(get_lifecycle),
):
    return await _apply(lifecycle.resume(task_id, user_id))


@router.post("/api/tasks/{task_id}/cancel", response_model=LifecycleResponse)
async def cancel_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    lifecycle: LifecycleController = Depends(get_lifecycle),
):
    return await _apply(lifecycle.cancel(task_id, user_id))


@router.patch("/api/tasks/{task_id}", response_model=LifecycleResponse)
async def update_task(
    task_id: str,
    body: LifecycleActionRequest,
    user_id: str = Depends(get_current_user),
    lifecycle: LifecycleController = Depends(get_lifecycle),
):
    """以 action 字段驱动的生命周期操作"""
    if body.action == "pause":
        return await _apply(lifecycle.pause(task_id, user_id, body.pause_reason))
    if body.action == "resume":
        return await _apply(lifecycle.resume(task_id, user_id))
    return await _apply(lifecycle.cancel(task_id, user_id))
