"""packages/core 测试配置 -- 领域对象构造 fixture"""

from datetime import datetime, timedelta

import pytest
from relayagent.core.clock import utc_now
from relayagent.core.models import Step, StepStatus, Task, TaskStatus
from ulid import ULID


def build_task(
    status: TaskStatus = TaskStatus.PENDING,
    user_id: str = "owner",
    goal: str = "research 3 competitors",
    updated_at: datetime | None = None,
    **overrides,
) -> Task:
    now = utc_now()
    return Task(
        task_id=str(ULID()),
        user_id=user_id,
        goal=goal,
        title=goal[:80],
        status=status,
        created_at=now,
        updated_at=updated_at or now,
        **overrides,
    )


def build_steps(task_id: str, count: int) -> list[Step]:
    return [
        Step(
            step_id=str(ULID()),
            task_id=task_id,
            step_index=i,
            title=f"Step {i}",
            instruction=f"Do thing {i}",
            status=StepStatus.PENDING,
        )
        for i in range(count)
    ]


@pytest.fixture
def make_task():
    return build_task


@pytest.fixture
def make_steps():
    return build_steps


@pytest.fixture
def minutes_ago():
    def _ago(minutes: float) -> datetime:
        return utc_now() - timedelta(minutes=minutes)

    return _ago
