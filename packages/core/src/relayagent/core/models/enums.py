"""枚举定义 -- Task / Step 状态机与事件类型

包含 TaskStatus、StepStatus 状态机、EventType、ActorType、NotificationType 枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    # 活跃状态
    PENDING = "pending"
    PLANNING = "planning"
    RUNNING = "running"
    WAITING = "waiting"
    PAUSED = "paused"

    # 终态
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(StrEnum):
    """Step 状态机 -- 仅由 Executor 推进"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# 合法状态流转
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {
        TaskStatus.PLANNING,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    # planning -> planning：sweep 重启停滞的规划
    TaskStatus.PLANNING: {
        TaskStatus.PLANNING,
        TaskStatus.RUNNING,
        TaskStatus.PAUSED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.RUNNING: {
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.PAUSED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.WAITING: {
        TaskStatus.PLANNING,
        TaskStatus.RUNNING,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    # paused -> pending：恢复一个尚未落盘计划的任务，重新规划
    TaskStatus.PAUSED: {
        TaskStatus.RUNNING,
        TaskStatus.PENDING,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
    TaskStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
}

ACTIVE_STATES: set[TaskStatus] = set(TaskStatus) - TERMINAL_STATES

# 可被 pause 的状态
PAUSABLE_STATES: set[TaskStatus] = {TaskStatus.RUNNING, TaskStatus.PLANNING}

# Planner 可接手的状态
PLANNABLE_STATES: set[TaskStatus] = {
    TaskStatus.PENDING,
    TaskStatus.WAITING,
    TaskStatus.PLANNING,
}


class EventType(StrEnum):
    """事件类型"""

    TASK_CREATED = "TASK_CREATED"
    STATE_TRANSITION = "STATE_TRANSITION"
    PLAN_CREATED = "PLAN_CREATED"
    PLAN_FAILED = "PLAN_FAILED"
    STEP_CLAIMED = "STEP_CLAIMED"
    STEP_COMPLETED = "STEP_COMPLETED"
    STEP_FAILED = "STEP_FAILED"
    STEP_RETRY_SCHEDULED = "STEP_RETRY_SCHEDULED"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"


class ActorType(StrEnum):
    """操作者类型"""

    USER = "user"
    PLANNER = "planner"
    EXECUTOR = "executor"
    SWEEPER = "sweeper"
    SYSTEM = "system"


class NotificationType(StrEnum):
    """通知类型"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    TASK = "task"
    REMINDER = "reminder"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
