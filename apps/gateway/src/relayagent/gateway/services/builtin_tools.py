"""内置工具 -- send_notification

工具契约 execute(arguments) 不携带调用方信息，当前任务通过 contextvar 传递：
Executor 在执行步骤期间绑定 ToolContext，工具据此代表任务所属用户发送通知。
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from relayagent.core.models import Notification, NotificationType
from relayagent.core.store.protocols import NotificationSink
from relayagent.provider import FunctionTool, ToolError, ToolRegistry
from ulid import ULID


@dataclass(frozen=True)
class ToolContext:
    """当前正在执行的任务"""

    task_id: str
    user_id: str


_current_tool_context: ContextVar[ToolContext | None] = ContextVar(
    "relay_tool_context",
    default=None,
)


@contextmanager
def bind_tool_context(task_id: str, user_id: str) -> Iterator[ToolContext]:
    ctx = ToolContext(task_id=task_id, user_id=user_id)
    token = _current_tool_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_tool_context.reset(token)


def current_tool_context() -> ToolContext | None:
    return _current_tool_context.get()


SEND_NOTIFICATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {
            "type": "string",
            "description": 'Short notification title (e.g. "Research Complete")',
        },
        "body": {
            "type": "string",
            "description": "Notification details: what happened, what was found, or what action is needed",
        },
        "type": {
            "type": "string",
            "enum": [t.value for t in NotificationType],
            "description": "info, success, warning, task or reminder",
        },
    },
    "required": ["title", "body"],
}


def build_send_notification_tool(sink: NotificationSink) -> FunctionTool:
    """构建 send_notification 工具"""

    async def send_notification(arguments: dict[str, Any]) -> dict[str, Any]:
        ctx = current_tool_context()
        if ctx is None:
            raise ToolError("send_notification", "no task is bound to this tool call")

        raw_type = arguments.get("type") or NotificationType.INFO.value
        try:
            notification_type = NotificationType(raw_type)
        except ValueError as e:
            raise ToolError("send_notification", f"unknown notification type '{raw_type}'") from e

        notification = Notification(
            notification_id=str(ULID()),
            user_id=ctx.user_id,
            task_id=ctx.task_id,
            title=arguments["title"],
            body=arguments["body"],
            type=notification_type,
            source="agent",
        )
        await sink.send(notification)
        return {
            "sent": True,
            "notification_id": notification.notification_id,
            "message": f'Notification sent: "{notification.title}"',
        }

    return FunctionTool(
        name="send_notification",
        description=(
            "Send a notification to the user's inbox. Use this for important updates, "
            "completed work, reminders, warnings, or noteworthy findings."
        ),
        input_schema=SEND_NOTIFICATION_SCHEMA,
        func=send_notification,
    )


def default_tool_registry(sink: NotificationSink) -> ToolRegistry:
    """默认工具集：仅内置的 send_notification"""
    return ToolRegistry([build_send_notification_tool(sink)])
