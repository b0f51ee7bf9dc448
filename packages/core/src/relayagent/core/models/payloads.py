"""Event Payload 子类型

所有事件的结构化 payload 定义。
"""

from pydantic import BaseModel, Field

from .enums import NotificationType, TaskStatus


class TaskCreatedPayload(BaseModel):
    """TASK_CREATED 事件 payload"""

    title: str
    user_id: str
    max_steps: int
    goal_length: int = Field(description="原始目标文本长度")


class StateTransitionPayload(BaseModel):
    """STATE_TRANSITION 事件 payload"""

    from_status: TaskStatus
    to_status: TaskStatus
    reason: str = Field(default="")


class PlanCreatedPayload(BaseModel):
    """PLAN_CREATED 事件 payload"""

    step_count: int
    truncated_from: int = Field(description="模型原始给出的步骤数")
    model_alias: str = Field(default="planner")


class PlanFailedPayload(BaseModel):
    """PLAN_FAILED 事件 payload"""

    error_type: str
    error_message: str


class StepClaimedPayload(BaseModel):
    """STEP_CLAIMED 事件 payload"""

    step_id: str
    step_index: int
    attempt: int = Field(description="本次是第几次尝试（从 1 开始）")


class StepCompletedPayload(BaseModel):
    """STEP_COMPLETED 事件 payload"""

    step_id: str
    step_index: int
    tool_calls: int = Field(default=0)
    output_length: int = Field(default=0)


class StepFailedPayload(BaseModel):
    """STEP_FAILED / STEP_RETRY_SCHEDULED 事件 payload"""

    step_id: str
    step_index: int
    retry_count: int
    error: str
    will_retry: bool


class NotificationSentPayload(BaseModel):
    """NOTIFICATION_SENT 事件 payload"""

    notification_id: str
    type: NotificationType
    title: str
