"""StepExecutor -- 每次调用至多执行一个步骤

一个 cycle：
1. 任务不在 running 时直接返回（协作式暂停 / 取消）
2. 选出下标最小的未完成步骤；没有则任务完成
3. 条件认领 pending -> running，竞争失败的一方无副作用退出
4. 以历史步骤产出为上下文调用模型，允许有限轮次的工具调用
5. 成功：步骤 completed，摘要合并进 Task.context
6. 失败：retry_count + 1，未达上限重置为 pending，达到上限步骤与任务一起 failed

模型与工具调用不在写事务内进行。
"""

import asyncio
from dataclasses import dataclass

import structlog
from relayagent.core.clock import utc_now
from relayagent.core.config import ERROR_MAX_LENGTH, EngineConfig
from relayagent.core.exceptions import format_error
from relayagent.core.models import (
    ACTIVE_STATES,
    ActorType,
    EventType,
    Step,
    StepClaimedPayload,
    StepCompletedPayload,
    StepFailedPayload,
    StepOutput,
    StepStatus,
    Task,
    TaskStatus,
)
from relayagent.core.store import StoreGroup
from relayagent.provider import ToolRegistry

from .builtin_tools import bind_tool_context
from .llm_service import ModelCaller
from .notifier import TaskNotifier
from .transitions import transition_task

log = structlog.get_logger()

EXECUTOR_SYSTEM_PROMPT = """You are an autonomous AI agent executing a task step by step.
You are currently on step {position} of {total} of the goal: "{goal}"

Previous step results:
{prior_context}

Execute the current step. Use tools if needed. Be thorough and produce concrete output.
After completing the step, summarize what you accomplished and any key data you found."""

LEASE_EXPIRED_ERROR = "step lease expired"
NO_STEPS_ERROR = "task has no steps to execute"


@dataclass
class CycleResult:
    """一次执行 cycle 的结果

    more_work 为 True 时调用方应链式触发下一 cycle。
    """

    task_id: str
    more_work: bool
    step_completed: str | None = None
    step_index: int | None = None
    retry: bool = False
    retry_count: int = 0
    reason: str = ""


def build_prior_context(
    completed_steps: list[Step],
    entry_max_chars: int,
    total_max_chars: int,
) -> str:
    """拼接已完成步骤的产出

    每条截断到 entry_max_chars；总长超过 total_max_chars 时从最早的条目开始丢弃。
    """
    entries = []
    for step in completed_steps:
        text = (step.output.text if step.output else "") or "completed"
        entries.append(f'Step {step.step_index + 1} "{step.title}": {text[:entry_max_chars]}')

    while len(entries) > 1 and len("\n".join(entries)) > total_max_chars:
        entries.pop(0)
    if entries and len(entries[0]) > total_max_chars:
        entries[0] = entries[0][:total_max_chars]
    return "\n".join(entries)


class StepExecutor:
    """步骤执行器"""

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

    async def run_cycle(self, task_id: str) -> CycleResult:
        """执行一个 cycle"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            log.warning("cycle_task_not_found", task_id=task_id)
            return CycleResult(task_id=task_id, more_work=False, reason="task_not_found")

        if task.status != TaskStatus.RUNNING:
            log.info("cycle_skipped", task_id=task_id, status=task.status.value)
            return CycleResult(
                task_id=task_id,
                more_work=False,
                reason=f"status_{task.status.value}",
            )

        step = await self._stores.step_store.get_first_open_step(task_id)
        if step is None:
            if await self._stores.step_store.count_steps(task_id) == 0:
                await self._fail_task(task, NO_STEPS_ERROR)
                return CycleResult(task_id=task_id, more_work=False, reason="no_steps")
            reason = await self._complete_task(task)
            return CycleResult(task_id=task_id, more_work=False, reason=reason)

        if step.status == StepStatus.FAILED:
            # 步骤已失败但任务未同步失败：补齐
            await self._fail_task(task, step.error or "step failed")
            return CycleResult(
                task_id=task_id,
                more_work=False,
                step_index=step.step_index,
                reason="step_failed",
            )

        if step.status == StepStatus.RUNNING:
            if self._lease_active(step):
                log.info(
                    "cycle_step_in_progress",
                    task_id=task_id,
                    step_index=step.step_index,
                )
                return CycleResult(
                    task_id=task_id,
                    more_work=False,
                    step_index=step.step_index,
                    reason="step_in_progress",
                )
            log.warning(
                "step_lease_expired",
                task_id=task_id,
                step_index=step.step_index,
                started_at=step.started_at.isoformat() if step.started_at else None,
            )
            return await self._record_failure(
                task,
                step,
                LEASE_EXPIRED_ERROR,
                expected_started_at=step.started_at,
            )

        if not await self._claim(task, step):
            log.info("step_claim_lost", task_id=task_id, step_index=step.step_index)
            return CycleResult(
                task_id=task_id,
                more_work=False,
                step_index=step.step_index,
                reason="claim_lost",
            )

        log.info(
            "step_started",
            task_id=task_id,
            step_index=step.step_index,
            attempt=step.retry_count + 1,
        )
        try:
            async with asyncio.timeout(self._config.step_timeout_s):
                output = await self._execute(task, step)
        except TimeoutError:
            error = f"TimeoutError: step exceeded {self._config.step_timeout_s:g}s"
            return await self._record_failure(task, step, error)
        except Exception as e:
            return await self._record_failure(task, step, format_error(e))

        return await self._record_success(task, step, output)

    def _lease_active(self, step: Step) -> bool:
        if step.started_at is None:
            return False
        age = (utc_now() - step.started_at).total_seconds()
        return age < self._config.step_lease_s

    async def _claim(self, task: Task, step: Step) -> bool:
        now = utc_now()
        async with self._stores.transaction():
            if not await self._stores.step_store.claim_step(step.step_id, now):
                return False
            await self._stores.task_store.set_current_step(task.task_id, step.step_index, now)
            await self._stores.event_store.record(
                task.task_id,
                EventType.STEP_CLAIMED,
                ActorType.EXECUTOR,
                StepClaimedPayload(
                    step_id=step.step_id,
                    step_index=step.step_index,
                    attempt=step.retry_count + 1,
                ),
                now,
            )
        return True

    async def _execute(self, task: Task, step: Step) -> StepOutput:
        """调用模型执行步骤，处理工具调用轮次"""
        steps = await self._stores.step_store.list_steps(task.task_id)
        prior_context = build_prior_context(
            [s for s in steps if s.status == StepStatus.COMPLETED],
            self._config.context_entry_max_chars,
            self._config.prior_context_max_chars,
        )
        user_content = f"Step {step.step_index + 1}: {step.title}\nInstruction: {step.instruction}"
        if step.tool_name:
            user_content += f"\nSuggested tool: {step.tool_name}"

        messages: list[dict] = [
            {
                "role": "system",
                "content": EXECUTOR_SYSTEM_PROMPT.format(
                    position=step.step_index + 1,
                    total=len(steps),
                    goal=task.goal,
                    prior_context=prior_context or "(no prior steps)",
                ),
            },
            {"role": "user", "content": user_content},
        ]
        openai_tools = self._tools.to_openai_tools() or None

        tool_calls = 0
        tools_used: list[str] = []
        with bind_tool_context(task.task_id, task.user_id):
            for _ in range(self._config.max_tool_rounds):
                result = await self._llm.call(messages, model_alias="executor", tools=openai_tools)
                if not result.tool_calls:
                    return StepOutput(text=result.content, tool_calls=tool_calls, tools_used=tools_used)

                messages.append(
                    {
                        "role": "assistant",
                        "content": result.content or None,
                        "tool_calls": [call.to_message_dict() for call in result.tool_calls],
                    }
                )
                for call in result.tool_calls:
                    log.info(
                        "tool_call_started",
                        task_id=task.task_id,
                        step_index=step.step_index,
                        tool_name=call.name,
                    )
                    content = await self._tools.invoke(call.name, call.arguments)
                    tool_calls += 1
                    if call.name not in tools_used:
                        tools_used.append(call.name)
                    messages.append(
                        {"role": "tool", "tool_call_id": call.id, "content": content}
                    )

            # 工具轮次用尽：不再开放工具，要求给出最终回答
            log.info(
                "tool_rounds_exhausted",
                task_id=task.task_id,
                step_index=step.step_index,
                tool_calls=tool_calls,
            )
            final = await self._llm.call(messages, model_alias="executor", tools=None)
        return StepOutput(text=final.content, tool_calls=tool_calls, tools_used=tools_used)

    async def _record_success(self, task: Task, step: Step, output: StepOutput) -> CycleResult:
        now = utc_now()
        summary = output.text[: self._config.context_entry_max_chars] or "done"
        async with self._stores.transaction():
            if not await self._stores.step_store.complete_step(step.step_id, output, now):
                log.warning("step_completion_lost", task_id=task.task_id, step_index=step.step_index)
                return CycleResult(
                    task_id=task.task_id,
                    more_work=False,
                    step_index=step.step_index,
                    reason="step_lost",
                )
            step_count = await self._stores.step_store.count_steps(task.task_id)
            await self._stores.task_store.record_step_summary(
                task.task_id,
                key=f"step_{step.step_index}",
                summary=summary,
                next_step_index=min(step.step_index + 1, step_count - 1),
                updated_at=now,
            )
            await self._stores.event_store.record(
                task.task_id,
                EventType.STEP_COMPLETED,
                ActorType.EXECUTOR,
                StepCompletedPayload(
                    step_id=step.step_id,
                    step_index=step.step_index,
                    tool_calls=output.tool_calls,
                    output_length=len(output.text),
                ),
                now,
            )

        log.info(
            "step_completed",
            task_id=task.task_id,
            step_index=step.step_index,
            tool_calls=output.tool_calls,
        )
        if await self._stores.step_store.get_first_open_step(task.task_id) is None:
            # 最后一个步骤：同一 cycle 内完成任务（暂停中的任务留待 resume 后完成）
            reason = await self._complete_task(task)
            return CycleResult(
                task_id=task.task_id,
                more_work=False,
                step_completed=step.title,
                step_index=step.step_index,
                reason=reason,
            )
        return CycleResult(
            task_id=task.task_id,
            more_work=True,
            step_completed=step.title,
            step_index=step.step_index,
        )

    async def _record_failure(
        self,
        task: Task,
        step: Step,
        error: str,
        expected_started_at=None,
    ) -> CycleResult:
        error = error[:ERROR_MAX_LENGTH]
        now = utc_now()
        max_attempts = self._config.max_step_retries
        task_failed = False
        async with self._stores.transaction():
            updated = await self._stores.step_store.record_failure(
                step.step_id,
                error,
                max_attempts=max_attempts,
                now=now,
                expected_started_at=expected_started_at,
            )
            if updated is None:
                log.warning("step_failure_lost", task_id=task.task_id, step_index=step.step_index)
                return CycleResult(
                    task_id=task.task_id,
                    more_work=False,
                    step_index=step.step_index,
                    reason="step_lost",
                )

            will_retry = updated.status == StepStatus.PENDING
            await self._stores.event_store.record(
                task.task_id,
                EventType.STEP_RETRY_SCHEDULED if will_retry else EventType.STEP_FAILED,
                ActorType.EXECUTOR,
                StepFailedPayload(
                    step_id=step.step_id,
                    step_index=step.step_index,
                    retry_count=updated.retry_count,
                    error=error,
                    will_retry=will_retry,
                ),
                now,
            )
            if will_retry:
                await self._stores.task_store.touch(task.task_id, now)
            else:
                previous = await transition_task(
                    self._stores,
                    task.task_id,
                    allowed_from=ACTIVE_STATES,
                    to_status=TaskStatus.FAILED,
                    actor=ActorType.EXECUTOR,
                    now=now,
                    reason=f"step {step.step_index} exhausted retries",
                    error=error,
                    completed_at=now,
                )
                task_failed = previous is not None

        if will_retry:
            log.warning(
                "step_failed_will_retry",
                task_id=task.task_id,
                step_index=step.step_index,
                retry_count=updated.retry_count,
                error=error,
            )
            return CycleResult(
                task_id=task.task_id,
                more_work=True,
                step_index=step.step_index,
                retry=True,
                retry_count=updated.retry_count,
                reason="retry",
            )

        log.error(
            "step_failed_permanently",
            task_id=task.task_id,
            step_index=step.step_index,
            retry_count=updated.retry_count,
            error=error,
        )
        if task_failed:
            await self._notifier.step_failed(task, step.title, updated.retry_count, error)
        return CycleResult(
            task_id=task.task_id,
            more_work=False,
            step_index=step.step_index,
            retry_count=updated.retry_count,
            reason="step_failed",
        )

    async def _complete_task(self, task: Task) -> str:
        """全部步骤完成后收尾任务，返回 cycle 的 reason

        任务已不在 running（执行期间被暂停或取消）时不做转换：
        暂停返回 paused_after_last_step，resume 后的下一个 cycle 会完成任务。
        """
        now = utc_now()
        async with self._stores.transaction():
            previous = await transition_task(
                self._stores,
                task.task_id,
                allowed_from=TaskStatus.RUNNING,
                to_status=TaskStatus.COMPLETED,
                actor=ActorType.EXECUTOR,
                now=now,
                reason="all steps completed",
                completed_at=now,
            )
        if previous is None:
            current = await self._stores.task_store.get_task(task.task_id)
            status = current.status if current else None
            log.info(
                "task_completion_skipped",
                task_id=task.task_id,
                status=status.value if status else None,
            )
            if status == TaskStatus.PAUSED:
                return "paused_after_last_step"
            return f"status_{status.value}" if status else "task_not_found"
        step_count = await self._stores.step_store.count_steps(task.task_id)
        log.info("task_completed", task_id=task.task_id, step_count=step_count)
        await self._notifier.task_completed(task, step_count)
        return "completed"

    async def _fail_task(self, task: Task, error: str) -> None:
        now = utc_now()
        async with self._stores.transaction():
            previous = await transition_task(
                self._stores,
                task.task_id,
                allowed_from=ACTIVE_STATES,
                to_status=TaskStatus.FAILED,
                actor=ActorType.EXECUTOR,
                now=now,
                reason=error,
                error=error,
                completed_at=now,
            )
        if previous is None:
            return
        log.error("task_failed", task_id=task.task_id, error=error)
        await self._notifier.task_failed(task, error)
