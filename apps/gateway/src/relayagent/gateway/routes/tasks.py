"""任务路由

POST /api/tasks: 创建任务并异步触发规划
GET /api/tasks: 当前用户的任务列表，支持 status 筛选，附带步骤计数
GET /api/tasks/{task_id}: 任务详情，含有序步骤与事件
DELETE /api/tasks/{task_id}: 删除任务及其步骤、事件
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from relayagent.core.config import MAX_STEPS_LIMIT
from relayagent.core.exceptions import TaskNotFoundError
from relayagent.core.models import TaskStatus
from starlette.responses import JSONResponse

from ..deps import error_response, get_current_user, get_task_service
from ..services.task_service import TaskService
from .serializers import event_to_dict, step_to_dict, task_to_dict

router = APIRouter()


class CreateTaskRequest(BaseModel):
    """创建任务请求体"""

    goal: str = Field(min_length=1, description="自由文本目标")
    title: str | None = Field(default=None, max_length=200, description="短标题")
    max_steps: int | None = Field(
        default=None,
        ge=1,
        description=f"步骤数上限（超过 {MAX_STEPS_LIMIT} 时按 {MAX_STEPS_LIMIT} 处理）",
    )

    @field_validator("goal")
    @classmethod
    def _goal_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("goal must not be blank")
        return value


class CreateTaskResponse(BaseModel):
    task_id: str
    status: str
    title: str
    max_steps: int


def not_found(task_id: str) -> JSONResponse:
    return error_response(404, "TASK_NOT_FOUND", f"Task with id {task_id} does not exist")


@router.post("/api/tasks", status_code=201, response_model=CreateTaskResponse)
async def create_task(
    body: CreateTaskRequest,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    task = await service.create_task(
        user_id=user_id,
        goal=body.goal,
        title=body.title,
        max_steps=body.max_steps,
    )
    return CreateTaskResponse(
        task_id=task.task_id,
        status=task.status.value,
        title=task.title,
        max_steps=task.max_steps,
    )


@router.get("/api/tasks")
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    summaries = await service.list_tasks(user_id, status)
    return {
        "tasks": [
            {
                **task_to_dict(s.task),
                "step_count": s.step_count,
                "completed_steps": s.completed_steps,
                "failed_steps": s.failed_steps,
            }
            for s in summaries
        ]
    }


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: str,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    try:
        detail = await service.get_task_detail(task_id, user_id)
    except TaskNotFoundError:
        return not_found(task_id)

    return {
        "task": task_to_dict(detail.task),
        "steps": [step_to_dict(s) for s in detail.steps],
        "events": [event_to_dict(e) for e in detail.events],
    }


@router.delete("/api/tasks/{task_id}")
async def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    try:
        await service.delete_task(task_id, user_id)
    except TaskNotFoundError:
        return not_found(task_id)
    return {"task_id": task_id, "deleted": True}
