"""通知查询路由

GET /api/notifications?task_id=&limit=: 当前用户的通知，最新的在前
"""

from fastapi import APIRouter, Depends, Query
from relayagent.core.store import StoreGroup

from ..deps import get_current_user, get_store_group
from .serializers import notification_to_dict

router = APIRouter()


@router.get("/api/notifications")
async def list_notifications(
    task_id: str | None = Query(default=None, description="按任务筛选"),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
    store_group: StoreGroup = Depends(get_store_group),
):
    notifications = await store_group.notification_store.list_notifications(
        user_id, task_id=task_id, limit=limit
    )
    return {"notifications": [notification_to_dict(n) for n in notifications]}
