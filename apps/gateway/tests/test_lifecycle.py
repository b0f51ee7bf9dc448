"""生命周期测试 -- pause / resume / cancel 的合法性、副作用与 HTTP 映射"""

import asyncio

import pytest
from relayagent.core.exceptions import (
    InvalidTransitionError,
    TaskNotFoundError,
    TaskStatusConflictError,
)
from relayagent.core.models import ActorType, EventType, TaskStatus
from relayagent.gateway.services.lifecycle import DEFAULT_PAUSE_REASON


class TestLifecycleController:
    async def test_pause_running_task(self, lifecycle, seed_task, store_group):
        task = await seed_task(TaskStatus.RUNNING, steps=2)

        paused = await lifecycle.pause(task.task_id, reason="lunch break")

        assert paused.status == TaskStatus.PAUSED
        assert paused.pause_reason == "lunch break"
        events = await store_group.event_store.get_events_for_task(task.task_id)
        assert events[-1].type == EventType.STATE_TRANSITION
        assert events[-1].actor == ActorType.USER
        assert events[-1].payload["to_status"] == "paused"

    async def test_pause_defaults_reason(self, lifecycle, seed_task):
        task = await seed_task(TaskStatus.PLANNING)

        paused = await lifecycle.pause(task.task_id)

        assert paused.pause_reason == DEFAULT_PAUSE_REASON

    @pytest.mark.parametrize(
        "status, code",
        [
            (TaskStatus.PENDING, "INVALID_STATE_TRANSITION"),
            (TaskStatus.PAUSED, "INVALID_STATE_TRANSITION"),
            (TaskStatus.COMPLETED, "TASK_ALREADY_TERMINAL"),
            (TaskStatus.CANCELLED, "TASK_ALREADY_TERMINAL"),
        ],
    )
    async def test_pause_rejected(self, lifecycle, seed_task, store_group, status, code):
        task = await seed_task(status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.pause(task.task_id)

        assert exc_info.value.code == code
        stored = await store_group.task_store.get_task(task.task_id)
        assert stored.status == status
        assert stored.updated_at == task.updated_at

    async def test_resume_with_steps_restarts_chain(
        self, lifecycle, recording_scheduler, seed_task, store_group
    ):
        task = await seed_task(TaskStatus.RUNNING, steps=2)
        await lifecycle.pause(task.task_id)

        resumed = await lifecycle.resume(task.task_id)

        assert resumed.status == TaskStatus.RUNNING
        assert resumed.pause_reason is None
        assert recording_scheduler.runs == [(task.task_id, 0.0)]

    async def test_resume_without_steps_replans(
        self, lifecycle, recording_scheduler, seed_task
    ):
        task = await seed_task(TaskStatus.PLANNING)
        await lifecycle.pause(task.task_id)

        resumed = await lifecycle.resume(task.task_id)

        assert resumed.status == TaskStatus.PENDING
        assert recording_scheduler.plans == [(task.task_id, 0.0)]
        assert recording_scheduler.runs == []

    async def test_resume_while_plan_is_persisting_never_strands_steps(
        self, lifecycle, planner, llm, recording_scheduler, seed_task, store_group, monkeypatch
    ):
        task = await seed_task(TaskStatus.PENDING)
        release = asyncio.Event()

        async def _pause_then_wait(messages):
            await lifecycle.pause(task.task_id)
            await release.wait()
            return llm.plan("A", "B")

        llm.script("planner", _pause_then_wait)
        planning = asyncio.create_task(planner.plan(task.task_id))
        while (await store_group.task_store.get_task(task.task_id)).status != TaskStatus.PAUSED:
            await asyncio.sleep(0)

        # 此后每次步骤计数都应发生在写锁内
        original_count = store_group.step_store.count_steps
        lock_held: list[bool] = []

        async def _count_steps(task_id):
            lock_held.append(store_group.write_lock.locked())
            return await original_count(task_id)

        monkeypatch.setattr(store_group.step_store, "count_steps", _count_steps)
        resuming = asyncio.create_task(lifecycle.resume(task.task_id))
        release.set()
        await asyncio.gather(planning, resuming)

        assert lock_held and all(lock_held)
        stored = await store_group.task_store.get_task(task.task_id)
        if await original_count(task.task_id) > 0:
            assert stored.status == TaskStatus.RUNNING
            assert (task.task_id, 0.0) in recording_scheduler.runs
        else:
            assert stored.status == TaskStatus.PENDING
            assert (task.task_id, 0.0) in recording_scheduler.plans

    async def test_resume_after_plan_landed_while_paused_runs(
        self, lifecycle, planner, llm, recording_scheduler, seed_task, store_group
    ):
        task = await seed_task(TaskStatus.PENDING)

        async def _pause_then_plan(messages):
            await lifecycle.pause(task.task_id)
            return llm.plan("A", "B")

        llm.script("planner", _pause_then_plan)
        await planner.plan(task.task_id)

        resumed = await lifecycle.resume(task.task_id)

        assert resumed.status == TaskStatus.RUNNING
        assert recording_scheduler.runs == [(task.task_id, 0.0)]
        assert recording_scheduler.plans == []

    async def test_resume_requires_paused(self, lifecycle, recording_scheduler, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=1)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.resume(task.task_id)

        assert exc_info.value.code == "INVALID_STATE_TRANSITION"
        assert "Can only resume paused tasks" in exc_info.value.reason
        assert recording_scheduler.runs == []

    @pytest.mark.parametrize(
        "status",
        [TaskStatus.PENDING, TaskStatus.PLANNING, TaskStatus.RUNNING, TaskStatus.PAUSED],
    )
    async def test_cancel_active_task(self, lifecycle, seed_task, status):
        task = await seed_task(status, steps=1)

        cancelled = await lifecycle.cancel(task.task_id)

        assert cancelled.status == TaskStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert cancelled.pause_reason is None

    async def test_cancel_terminal_task_rejected(self, lifecycle, seed_task):
        task = await seed_task(TaskStatus.FAILED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.cancel(task.task_id)

        assert exc_info.value.code == "TASK_ALREADY_TERMINAL"

    async def test_other_users_task_is_not_found(self, lifecycle, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=1, user_id="alice")

        with pytest.raises(TaskNotFoundError):
            await lifecycle.pause(task.task_id, user_id="bob")

    async def test_concurrent_change_raises_conflict(
        self, lifecycle, seed_task, store_group, monkeypatch
    ):
        task = await seed_task(TaskStatus.RUNNING, steps=1)
        stale_view = await store_group.task_store.get_task(task.task_id)

        # 校验通过后任务被其他调用取消
        async with store_group.transaction():
            await store_group.task_store.update_status(
                task.task_id,
                expected=TaskStatus.RUNNING,
                new_status=TaskStatus.CANCELLED,
                updated_at=task.updated_at,
            )

        async def _stale_load(task_id, user_id):
            return stale_view

        monkeypatch.setattr(lifecycle, "_load", _stale_load)

        with pytest.raises(TaskStatusConflictError):
            await lifecycle.pause(task.task_id)


class TestLifecycleApi:
    async def test_pause_completed_task_is_conflict(self, client, scheduler):
        response = await client.post("/api/tasks", json={"goal": "research"})
        task_id = response.json()["task_id"]
        await scheduler.wait_idle()
        assert (await client.get(f"/api/tasks/{task_id}")).json()["task"]["status"] == "completed"

        response = await client.post(f"/api/tasks/{task_id}/pause")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "TASK_ALREADY_TERMINAL"

    async def test_pause_endpoint(self, client, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=2)

        response = await client.post(
            f"/api/tasks/{task.task_id}/pause", json={"reason": "checking results"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "task_id": task.task_id,
            "status": "paused",
            "pause_reason": "checking results",
        }

    async def test_pause_without_body_uses_default_reason(self, client, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=2)

        response = await client.post(f"/api/tasks/{task.task_id}/pause")

        assert response.status_code == 200
        assert response.json()["pause_reason"] == DEFAULT_PAUSE_REASON

    async def test_resume_endpoint_runs_remaining_steps(
        self, client, scheduler, seed_task, store_group
    ):
        task = await seed_task(TaskStatus.PAUSED, steps=2)

        response = await client.post(f"/api/tasks/{task.task_id}/resume")
        assert response.status_code == 200
        assert response.json()["status"] == "running"
        await scheduler.wait_idle()

        stored = await store_group.task_store.get_task(task.task_id)
        assert stored.status == TaskStatus.COMPLETED

    async def test_resume_not_paused_is_conflict(self, client, seed_task):
        task = await seed_task(TaskStatus.PENDING)

        response = await client.post(f"/api/tasks/{task.task_id}/resume")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    async def test_cancel_endpoint(self, client, seed_task):
        task = await seed_task(TaskStatus.PAUSED, steps=2)

        response = await client.post(f"/api/tasks/{task.task_id}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = await client.post(f"/api/tasks/{task.task_id}/cancel")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "TASK_ALREADY_TERMINAL"

    async def test_unknown_task_is_404(self, client):
        response = await client.post("/api/tasks/01ARZ3NDEKTSV4RRFFQ69G5FAV/pause")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TASK_NOT_FOUND"

    async def test_other_users_task_is_404(self, client, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=1, user_id="alice")

        response = await client.post(
            f"/api/tasks/{task.task_id}/cancel", headers={"X-User-Id": "bob"}
        )

        assert response.status_code == 404

    async def test_patch_actions(self, client, scheduler, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=2)

        paused = await client.patch(
            f"/api/tasks/{task.task_id}",
            json={"action": "pause", "pause_reason": "waiting on legal"},
        )
        assert paused.status_code == 200
        assert paused.json()["pause_reason"] == "waiting on legal"

        cancelled = await client.patch(f"/api/tasks/{task.task_id}", json={"action": "cancel"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        resumed = await client.patch(f"/api/tasks/{task.task_id}", json={"action": "resume"})
        assert resumed.status_code == 409

    async def test_patch_rejects_unknown_action(self, client, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=1)

        response = await client.patch(f"/api/tasks/{task.task_id}", json={"action": "restart"})

        assert response.status_code == 422
