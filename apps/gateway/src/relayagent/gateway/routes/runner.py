"""内部执行路由 -- 由 Chain Scheduler 自调用

POST /api/tasks/{task_id}/run: 执行恰好一个 cycle
POST /api/tasks/{task_id}/plan: 执行规划

配置了 RELAY_INTERNAL_TOKEN 时必须携带匹配的 X-Relay-Internal 头，否则 403。
"""

from fastapi import APIRouter, Depends, Request

from ..deps import forbidden_response, get_runner, internal_allowed
from ..services.runner import TaskRunner

router = APIRouter()


@router.post("/api/tasks/{task_id}/run")
async def run_task_cycle(
    task_id: str,
    request: Request,
    runner: TaskRunner = Depends(get_runner),
):
    if not internal_allowed(request):
        return forbidden_response()
    result = await runner.run_cycle(task_id)
    return {
        "task_id": task_id,
        "continue": result.more_work,
        "step_completed": result.step_completed,
        "reason": result.reason,
    }


@router.post("/api/tasks/{task_id}/plan")
async def plan_task(
    task_id: str,
    request: Request,
    runner: TaskRunner = Depends(get_runner),
):
    if not internal_allowed(request):
        return forbidden_response()
    outcome = await runner.plan(task_id)
    return {
        "task_id": task_id,
        "planned": outcome.planned,
        "status": outcome.status.value if outcome.status else None,
        "step_count": outcome.step_count,
    }
