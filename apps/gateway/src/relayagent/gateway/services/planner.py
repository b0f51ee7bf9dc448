"""GoalPlanner -- 把目标拆解为有序步骤并持久化

流程：
1. 任务进入 planning（首次进入时记录 started_at）
2. 调用模型（alias planner），提示词列出已注册工具，要求输出 JSON 数组
3. 解析、校验、截断到 max_steps
4. 单事务写入步骤 + plan 快照 + planning -> running

规划失败（模型错误、超时、输出无法解析）直接把任务置为 failed，不重试。
"""

import asyncio
import json
from dataclasses import dataclass

import structlog
from pydantic import ValidationError
from relayagent.core.clock import utc_now
from relayagent.core.config import EngineConfig
from relayagent.core.exceptions import format_error
from relayagent.core.models import (
    PLANNABLE_STATES,
    ActorType,
    EventType,
    PlanCreatedPayload,
    PlanFailedPayload,
    PlannedStep,
    Step,
    StepStatus,
    Task,
    TaskStatus,
)
from relayagent.core.store import StoreGroup
from relayagent.provider import ToolRegistry
from ulid import ULID

from .llm_service import ModelCaller
from .notifier import TaskNotifier
from .transitions import start_planned_task, transition_task

log = structlog.get_logger()

PLANNER_SYSTEM_PROMPT = """You are a task planner. Given a goal, decompose it into concrete, actionable steps.
Each step should be a single atomic action that can be executed independently.

Available tools the executor can use:
{tools}

Respond ONLY with a JSON array of steps. Each step must have:
- "title": short name (3-6 words)
- "instruction": detailed, self-contained instruction for the executor (what to do, what to look for, what to produce)
- "tool_name": (optional) which tool to use, or null for a reasoning/synthesis step

Produce at most {max_steps} steps.

Example:
[
  {{"title": "Compile pricing comparison", "instruction": "Create a structured comparison table of the competitor pricing found so far. Highlight where our pricing is better or worse.", "tool_name": null}},
  {{"title": "Notify user with findings", "instruction": "Send a notification summarizing the key findings of the pricing analysis.", "tool_name": "send_notification"}}
]"""


class PlanParseError(Exception):
    """模型输出不是合法的步骤数组"""


@dataclass
class PlanOutcome:
    """一次规划的结果

    planned 表示步骤已写入；status 是规划结束后任务所处的状态
    （running 时调用方应继续链式执行）。
    """

    task_id: str
    planned: bool
    status: TaskStatus | None = None
    step_count: int = 0
    reason: str = ""

    @property
    def ready_to_run(self) -> bool:
        """任务已进入 running 且步骤就绪（新写入或早已存在）"""
        return self.status == TaskStatus.RUNNING and (
            self.planned or self.reason == "steps_exist"
        )


def parse_plan(text: str) -> list[PlannedStep]:
    """从模型输出中解析步骤数组

    允许数组前后出现说明文字或代码块标记：取第一个 "[" 到最后一个 "]"。

    Raises:
        PlanParseError: 找不到数组、JSON 非法、数组为空或元素不合法
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise PlanParseError("model did not return a JSON array of steps")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise PlanParseError(f"invalid JSON in plan: {e.msg}") from e

    if not isinstance(data, list):
        raise PlanParseError("plan is not a JSON array")
    if not data:
        raise PlanParseError("no steps generated")

    steps: list[PlannedStep] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise PlanParseError(f"step {index} is not an object")
        try:
            steps.append(PlannedStep.model_validate(item))
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise PlanParseError(f"step {index} is invalid ({fields or 'schema'})") from e
    return steps


class GoalPlanner:
    """目标规划器"""

    def __init__(
        self,
        store_group: StoreGroup,
        llm: ModelCaller,
        tools: ToolRegistry,
        notifier: TaskNotifier,
        config: EngineConfig,
    ) -> None:
        self._stores = store_group
        self._llm = llm
        self._tools = tools
        self._notifier = notifier
        self._config = config

    async def plan(self, task_id: str) -> PlanOutcome:
        """规划任务；重复调用与并发调用都是安全的"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            log.warning("plan_task_not_found", task_id=task_id)
            return PlanOutcome(task_id=task_id, planned=False, reason="task_not_found")

        if task.status not in PLANNABLE_STATES:
            log.info("plan_skipped", task_id=task_id, status=task.status.value)
            return PlanOutcome(
                task_id=task_id,
                planned=False,
                status=task.status,
                reason="not_plannable",
            )

        if await self._stores.step_store.count_steps(task_id) > 0:
            # 计划已落盘但任务没有进入 running（例如与 resume 交错），直接接上执行链
            status = task.status
            if task.status in (TaskStatus.PENDING, TaskStatus.WAITING):
                async with self._stores.transaction():
                    if await start_planned_task(
                        self._stores, task_id, ActorType.PLANNER, utc_now()
                    ):
                        status = TaskStatus.RUNNING
            log.info("plan_skipped_steps_exist", task_id=task_id, status=status.value)
            return PlanOutcome(
                task_id=task_id,
                planned=False,
                status=status,
                reason="steps_exist",
            )

        if not await self._enter_planning(task):
            return PlanOutcome(task_id=task_id, planned=False, reason="state_conflict")

        log.info("planning_started", task_id=task_id, max_steps=task.max_steps)
        try:
            async with asyncio.timeout(self._config.step_timeout_s):
                result = await self._llm.call(
                    self._build_messages(task),
                    model_alias="planner",
                )
            parsed = parse_plan(result.content)
        except TimeoutError:
            error = f"TimeoutError: planning exceeded {self._config.step_timeout_s:g}s"
            return await self._fail(task, error, "TimeoutError")
        except Exception as e:
            return await self._fail(task, format_error(e), type(e).__name__)

        return await self._persist(task, parsed)

    def _build_messages(self, task: Task) -> list[dict[str, str]]:
        system = PLANNER_SYSTEM_PROMPT.format(
            tools=self._tools.describe(),
            max_steps=task.max_steps,
        )
        # user 消息以目标本身开头
        user = task.goal
        if task.context:
            user += "\n\nContext:\n" + json.dumps(task.context, ensure_ascii=False)
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def _enter_planning(self, task: Task) -> bool:
        now = utc_now()
        fields = {} if task.started_at else {"started_at": now}
        async with self._stores.transaction():
            previous = await transition_task(
                self._stores,
                task.task_id,
                allowed_from=PLANNABLE_STATES,
                to_status=TaskStatus.PLANNING,
                actor=ActorType.PLANNER,
                now=now,
                reason="replan" if task.status == TaskStatus.PLANNING else "planning",
                **fields,
            )
        if previous is None:
            log.info("plan_enter_conflict", task_id=task.task_id)
            return False
        return True

    async def _persist(self, task: Task, parsed: list[PlannedStep]) -> PlanOutcome:
        planned = parsed[: task.max_steps]
        now = utc_now()
        steps = [
            Step(
                step_id=str(ULID()),
                task_id=task.task_id,
                step_index=index,
                title=item.title,
                instruction=item.instruction,
                tool_name=item.tool_name,
                status=StepStatus.PENDING,
            )
            for index, item in enumerate(planned)
        ]

        async with self._stores.transaction():
            # 并发的另一个 planner 已经写入步骤
            if await self._stores.step_store.count_steps(task.task_id) > 0:
                log.info("plan_discarded_steps_exist", task_id=task.task_id)
                return PlanOutcome(task_id=task.task_id, planned=False, reason="steps_exist")

            current = await self._stores.task_store.get_task(task.task_id)
            if current is None or current.status not in (TaskStatus.PLANNING, TaskStatus.PAUSED):
                log.info(
                    "plan_discarded",
                    task_id=task.task_id,
                    status=current.status.value if current else None,
                )
                return PlanOutcome(
                    task_id=task.task_id,
                    planned=False,
                    status=current.status if current else None,
                    reason="not_plannable",
                )

            if current.status == TaskStatus.PLANNING:
                final_status = TaskStatus.RUNNING
                hit = await transition_task(
                    self._stores,
                    task.task_id,
                    allowed_from=TaskStatus.PLANNING,
                    to_status=TaskStatus.RUNNING,
                    actor=ActorType.PLANNER,
                    now=now,
                    reason="plan created",
                    plan=planned,
                    current_step_index=0,
                )
            else:
                # 规划期间被暂停：落盘计划，保持 paused
                final_status = TaskStatus.PAUSED
                hit = await self._stores.task_store.update_status(
                    task.task_id,
                    expected=TaskStatus.PAUSED,
                    new_status=TaskStatus.PAUSED,
                    updated_at=now,
                    plan=planned,
                    current_step_index=0,
                )
            if not hit:
                return PlanOutcome(task_id=task.task_id, planned=False, reason="state_conflict")

            await self._stores.step_store.insert_steps(steps)
            await self._stores.event_store.record(
                task.task_id,
                EventType.PLAN_CREATED,
                ActorType.PLANNER,
                PlanCreatedPayload(step_count=len(steps), truncated_from=len(parsed)),
                now,
            )

        log.info(
            "plan_created",
            task_id=task.task_id,
            step_count=len(steps),
            truncated_from=len(parsed),
            status=final_status.value,
        )
        return PlanOutcome(
            task_id=task.task_id,
            planned=True,
            status=final_status,
            step_count=len(steps),
        )

    async def _fail(self, task: Task, error: str, error_type: str) -> PlanOutcome:
        log.error("planning_failed", task_id=task.task_id, error=error)
        now = utc_now()
        async with self._stores.transaction():
            previous = await transition_task(
                self._stores,
                task.task_id,
                allowed_from=TaskStatus.PLANNING,
                to_status=TaskStatus.FAILED,
                actor=ActorType.PLANNER,
                now=now,
                reason="planning failed",
                error=error,
                completed_at=now,
            )
            if previous is not None:
                await self._stores.event_store.record(
                    task.task_id,
                    EventType.PLAN_FAILED,
                    ActorType.PLANNER,
                    PlanFailedPayload(error_type=error_type, error_message=error),
                    now,
                )

        if previous is None:
            # 规划期间被暂停或取消，保持该状态
            current = await self._stores.task_store.get_task(task.task_id)
            log.info(
                "planning_failure_not_recorded",
                task_id=task.task_id,
                status=current.status.value if current else None,
            )
            return PlanOutcome(
                task_id=task.task_id,
                planned=False,
                status=current.status if current else None,
                reason="planning_failed",
            )

        await self._notifier.planning_failed(task, error)
        return PlanOutcome(
            task_id=task.task_id,
            planned=False,
            status=TaskStatus.FAILED,
            reason="planning_failed",
        )
