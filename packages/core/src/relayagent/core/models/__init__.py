"""RelayAgent Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_STATES,
    PAUSABLE_STATES,
    PLANNABLE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActorType,
    EventType,
    NotificationType,
    StepStatus,
    TaskStatus,
    validate_transition,
)
from .event import Event
from .notification import Notification
from .payloads import (
    NotificationSentPayload,
    PlanCreatedPayload,
    PlanFailedPayload,
    StateTransitionPayload,
    StepClaimedPayload,
    StepCompletedPayload,
    StepFailedPayload,
    TaskCreatedPayload,
)
from .step import Step, StepOutput
from .task import PlannedStep, Task

__all__ = [
    # 枚举
    "TaskStatus",
    "StepStatus",
    "EventType",
    "ActorType",
    "NotificationType",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
    "PAUSABLE_STATES",
    "PLANNABLE_STATES",
    "validate_transition",
    # Task / Step
    "Task",
    "PlannedStep",
    "Step",
    "StepOutput",
    # Event
    "Event",
    # Notification
    "Notification",
    # Payloads
    "TaskCreatedPayload",
    "StateTransitionPayload",
    "PlanCreatedPayload",
    "PlanFailedPayload",
    "StepClaimedPayload",
    "StepCompletedPayload",
    "StepFailedPayload",
    "NotificationSentPayload",
]
