"""Step Domain Model

Step 是 Task 下的一个原子工作单元。step_index 在任务内从 0 连续编号，
计划落盘后固定不变；状态只由 Executor 推进。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import StepStatus


class StepOutput(BaseModel):
    """步骤执行产出"""

    text: str = Field(default="", description="模型最终输出文本")
    tool_calls: int = Field(default=0, ge=0, description="本步骤内工具调用次数")
    tools_used: list[str] = Field(default_factory=list, description="调用过的工具名")


class Step(BaseModel):
    """Step 数据模型"""

    step_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="所属 Task")
    step_index: int = Field(ge=0, description="任务内 0 起连续下标")
    title: str
    instruction: str
    tool_name: str | None = Field(default=None, description="工具提示")
    status: StepStatus = Field(default=StepStatus.PENDING)
    retry_count: int = Field(default=0, ge=0, description="已失败的尝试次数")
    error: str | None = Field(default=None, description="最近一次失败原因")
    output: StepOutput | None = Field(default=None)
    started_at: datetime | None = None
    completed_at: datetime | None = None
