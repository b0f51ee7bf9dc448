"""Core 异常体系

路由层据此映射 HTTP 错误码：
- TaskNotFoundError -> 404 TASK_NOT_FOUND
- InvalidTransitionError -> 409 INVALID_STATE_TRANSITION / TASK_ALREADY_TERMINAL
- TaskStatusConflictError -> 409 STATE_CONFLICT
"""

from .models.enums import TERMINAL_STATES, TaskStatus


class TaskNotFoundError(Exception):
    """任务不存在（或不属于当前用户）"""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task with id {task_id} does not exist")


class InvalidTransitionError(Exception):
    """非法的生命周期请求，不产生任何状态变更"""

    def __init__(
        self,
        task_id: str,
        action: str,
        current: TaskStatus,
        reason: str = "",
    ) -> None:
        self.task_id = task_id
        self.action = action
        self.current = current
        self.reason = reason or f"Cannot {action} task in status '{current}'"
        super().__init__(self.reason)

    @property
    def code(self) -> str:
        if self.current in TERMINAL_STATES:
            return "TASK_ALREADY_TERMINAL"
        return "INVALID_STATE_TRANSITION"


class TaskStatusConflictError(Exception):
    """乐观并发条件不满足：任务状态在校验之后已被其他调用修改"""

    def __init__(self, task_id: str, expected: set[TaskStatus] | TaskStatus) -> None:
        self.task_id = task_id
        self.expected = expected
        super().__init__(
            f"Task {task_id} status changed concurrently (expected {expected})"
        )


def format_error(error: BaseException, max_length: int = 500) -> str:
    """异常 -> 落库错误文本 "<Type>: <message>"，截断到 max_length"""
    message = str(error).strip()
    text = f"{type(error).__name__}: {message}" if message else type(error).__name__
    return text[:max_length]
