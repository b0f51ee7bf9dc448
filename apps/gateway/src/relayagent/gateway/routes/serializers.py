"""响应序列化 -- 领域模型 -> JSON 友好的 dict"""

from datetime import datetime

from relayagent.core.models import Event, Notification, Step, Task


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def task_to_dict(task: Task) -> dict:
    return {
        "task_id": task.task_id,
        "user_id": task.user_id,
        "title": task.title,
        "goal": task.goal,
        "status": task.status.value,
        "plan": [step.model_dump() for step in task.plan],
        "current_step_index": task.current_step_index,
        "context": task.context,
        "max_steps": task.max_steps,
        "pause_reason": task.pause_reason,
        "error": task.error,
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
        "started_at": _iso(task.started_at),
        "completed_at": _iso(task.completed_at),
    }


def step_to_dict(step: Step) -> dict:
    return {
        "step_id": step.step_id,
        "step_index": step.step_index,
        "title": step.title,
        "instruction": step.instruction,
        "tool_name": step.tool_name,
        "status": step.status.value,
        "retry_count": step.retry_count,
        "error": step.error,
        "output": step.output.model_dump() if step.output else None,
        "started_at": _iso(step.started_at),
        "completed_at": _iso(step.completed_at),
    }


def event_to_dict(event: Event) -> dict:
    return {
        "event_id": event.event_id,
        "task_seq": event.task_seq,
        "ts": _iso(event.ts),
        "type": event.type.value,
        "actor": event.actor.value,
        "payload": event.payload,
        "trace_id": event.trace_id,
    }


def notification_to_dict(notification: Notification) -> dict:
    return {
        "notification_id": notification.notification_id,
        "task_id": notification.task_id,
        "title": notification.title,
        "body": notification.body,
        "type": notification.type.value,
        "source": notification.source,
        "created_at": _iso(notification.created_at),
    }
