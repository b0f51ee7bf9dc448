"""Stall sweep 路由 -- 由外部定时器触发

GET/POST /api/cron/tasks
"""

from fastapi import APIRouter, Depends, Request

from ..deps import forbidden_response, get_sweeper, internal_allowed
from ..services.sweeper import StallSweeper

router = APIRouter()


@router.api_route("/api/cron/tasks", methods=["GET", "POST"])
async def sweep_stalled_tasks(
    request: Request,
    sweeper: StallSweeper = Depends(get_sweeper),
):
    if not internal_allowed(request):
        return forbidden_response()
    report = await sweeper.sweep()
    return {
        "ok": True,
        "stalled": report.stalled,
        "waiting": report.waiting,
        "restarted": report.restarted,
        "task_ids": report.task_ids,
    }
