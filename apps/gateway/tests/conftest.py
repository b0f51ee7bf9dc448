"""Gateway 测试配置 -- 引擎组件与任务构造 fixture

app / client / llm / engine_config 等共享 fixture 定义在根 conftest。
"""

from datetime import datetime

import pytest
from relayagent.core.clock import utc_now
from relayagent.core.models import PlannedStep, Step, StepStatus, Task, TaskStatus
from relayagent.gateway.services.builtin_tools import default_tool_registry
from relayagent.gateway.services.executor import StepExecutor
from relayagent.gateway.services.lifecycle import LifecycleController
from relayagent.gateway.services.notifier import TaskNotifier
from relayagent.gateway.services.planner import GoalPlanner
from relayagent.gateway.services.runner import TaskRunner
from relayagent.gateway.services.sweeper import StallSweeper
from ulid import ULID


@pytest.fixture
def tools(store_group):
    return default_tool_registry(store_group.notification_store)


@pytest.fixture
def notifier(store_group):
    return TaskNotifier(store_group, store_group.notification_store)


@pytest.fixture
def planner(store_group, llm, tools, notifier, engine_config):
    return GoalPlanner(store_group, llm, tools, notifier, engine_config)


@pytest.fixture
def executor(store_group, llm, tools, notifier, engine_config):
    return StepExecutor(store_group, llm, tools, notifier, engine_config)


@pytest.fixture
def runner(planner, executor, recording_scheduler, engine_config):
    return TaskRunner(planner, executor, recording_scheduler, engine_config)


@pytest.fixture
def sweeper(store_group, recording_scheduler, engine_config):
    return StallSweeper(store_group, recording_scheduler, engine_config)


@pytest.fixture
def lifecycle(store_group, recording_scheduler, engine_config):
    return LifecycleController(store_group, recording_scheduler, engine_config)


@pytest.fixture
def seed_task(store_group):
    """直接写库构造任务：seed_task(status, steps=[标题...] 或步骤数)"""

    async def _seed(
        status: TaskStatus = TaskStatus.RUNNING,
        steps: int | list[str] = 0,
        user_id: str = "owner",
        goal: str = "research 3 competitors",
        updated_at: datetime | None = None,
        max_steps: int = 20,
    ) -> Task:
        titles = [f"Step {i}" for i in range(steps)] if isinstance(steps, int) else steps
        now = utc_now()
        task = Task(
            task_id=str(ULID()),
            user_id=user_id,
            goal=goal,
            title=goal[:80],
            status=status,
            plan=[PlannedStep(title=t, instruction=f"Do {t}") for t in titles],
            max_steps=max_steps,
            created_at=now,
            updated_at=updated_at or now,
            started_at=now if status != TaskStatus.PENDING else None,
        )
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            if titles:
                await store_group.step_store.insert_steps(
                    [
                        Step(
                            step_id=str(ULID()),
                            task_id=task.task_id,
                            step_index=i,
                            title=t,
                            instruction=f"Do {t}",
                            status=StepStatus.PENDING,
                        )
                        for i, t in enumerate(titles)
                    ]
                )
        return task

    return _seed
