"""TaskNotifier -- 任务终态通知

仅由赢得终态流转的一方调用，因此每个任务的完成 / 失败通知最多发送一次。
sink 投递失败不回滚已提交的终态，只记录 error 日志。
"""

import structlog
from relayagent.core.clock import utc_now
from relayagent.core.models import (
    ActorType,
    EventType,
    Notification,
    NotificationSentPayload,
    NotificationType,
    Task,
)
from relayagent.core.store import StoreGroup
from relayagent.core.store.protocols import NotificationSink
from ulid import ULID

log = structlog.get_logger()

# 通知正文中错误信息的截断长度
ERROR_PREVIEW_LENGTH = 200


class TaskNotifier:
    """构建并投递任务通知，同时记录 NOTIFICATION_SENT 事件"""

    def __init__(self, store_group: StoreGroup, sink: NotificationSink) -> None:
        self._stores = store_group
        self._sink = sink

    async def task_completed(self, task: Task, step_count: int) -> None:
        await self._send(
            task,
            title=f"Task Complete: {task.title}",
            body=(
                f'Your autonomous task "{task.title}" has finished all '
                f"{step_count} steps successfully."
            ),
            notification_type=NotificationType.SUCCESS,
        )

    async def step_failed(self, task: Task, step_title: str, attempts: int, error: str) -> None:
        await self._send(
            task,
            title=f"Task Failed: {task.title}",
            body=(
                f'Step "{step_title}" failed after {attempts} attempts: '
                f"{error[:ERROR_PREVIEW_LENGTH]}"
            ),
            notification_type=NotificationType.WARNING,
        )

    async def planning_failed(self, task: Task, error: str) -> None:
        await self._send(
            task,
            title=f"Task Failed: {task.title}",
            body=f"Planning failed: {error[:ERROR_PREVIEW_LENGTH]}",
            notification_type=NotificationType.WARNING,
        )

    async def task_failed(self, task: Task, error: str) -> None:
        await self._send(
            task,
            title=f"Task Failed: {task.title}",
            body=error[:ERROR_PREVIEW_LENGTH],
            notification_type=NotificationType.WARNING,
        )

    async def _send(
        self,
        task: Task,
        title: str,
        body: str,
        notification_type: NotificationType,
    ) -> None:
        notification = Notification(
            notification_id=str(ULID()),
            user_id=task.user_id,
            task_id=task.task_id,
            title=title,
            body=body,
            type=notification_type,
            source="task-runner",
        )
        try:
            await self._sink.send(notification)
        except Exception as e:
            log.error(
                "notification_send_failed",
                task_id=task.task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        async with self._stores.transaction():
            # 任务可能已被删除，事件随任务级联，此时不再记录
            if await self._stores.task_store.get_task(task.task_id) is None:
                return
            await self._stores.event_store.record(
                task.task_id,
                EventType.NOTIFICATION_SENT,
                ActorType.SYSTEM,
                NotificationSentPayload(
                    notification_id=notification.notification_id,
                    type=notification_type,
                    title=title,
                ),
                utc_now(),
            )
        log.info(
            "notification_sent",
            task_id=task.task_id,
            notification_type=notification_type.value,
        )
