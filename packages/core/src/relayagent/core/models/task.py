"""Task Domain Model

一个 Task 对应用户提交的一个目标及其端到端执行记录。
plan 是 Planner 产出时的不可变快照；Step 记录才是执行层面的事实来源。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import TaskStatus


class PlannedStep(BaseModel):
    """Planner 产出的单个步骤描述（plan 快照元素）"""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, description="步骤短标题")
    instruction: str = Field(min_length=1, description="自包含的详细执行指令")
    tool_name: str | None = Field(
        default=None,
        alias="toolName",
        description="建议使用的工具名，None 表示纯推理/汇总步骤",
    )

    @field_validator("title", "instruction")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("tool_name")
    @classmethod
    def _empty_tool_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class Task(BaseModel):
    """Task 数据模型

    updated_at 是 stall recovery 的存活信号，任务或其步骤的每次写入都会刷新。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="所属用户（租户）标识")
    goal: str = Field(description="自由文本目标")
    title: str = Field(description="短标题")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    plan: list[PlannedStep] = Field(default_factory=list, description="计划快照")
    current_step_index: int = Field(default=0, ge=0, description="当前步骤下标")
    context: dict[str, str] = Field(
        default_factory=dict,
        description="逐步累积的步骤摘要 step_<index> -> summary",
    )
    max_steps: int = Field(default=20, ge=1, description="步骤数上限")
    pause_reason: str | None = Field(default=None, description="暂停原因，仅 paused 时有值")
    error: str | None = Field(default=None, description="最近一次任务级错误")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间（存活信号）")
    started_at: datetime | None = Field(default=None, description="首次进入规划的时间")
    completed_at: datetime | None = Field(default=None, description="进入终态的时间")

    @property
    def trace_id(self) -> str:
        return f"trace-{self.task_id}"
