"""Notification Domain Model

任务进入终态（完成 / 永久失败）时发往通知 sink 的消息。
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from .enums import NotificationType


class Notification(BaseModel):
    """Notification 数据模型"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="接收用户")
    task_id: str | None = Field(default=None, description="关联任务")
    title: str
    body: str
    type: NotificationType = Field(default=NotificationType.INFO)
    source: str = Field(default="task-runner", description="来源组件")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
