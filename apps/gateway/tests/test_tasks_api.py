"""任务 API 测试 -- 创建、查询、列表、删除与用户隔离"""

from relayagent.core.clock import utc_now
from relayagent.core.models import StepOutput, TaskStatus


class TestCreateTask:
    async def test_create_returns_201_and_runs_to_completion(
        self, client, scheduler, store_group
    ):
        response = await client.post(
            "/api/tasks", json={"goal": "research 3 competitors and summarize pricing"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["title"] == "research 3 competitors and summarize pricing"
        assert data["max_steps"] == 20
        assert len(data["task_id"]) == 26

        await scheduler.wait_idle()
        stored = await store_group.task_store.get_task(data["task_id"])
        assert stored.status == TaskStatus.COMPLETED
        assert stored.user_id == "owner"

    async def test_title_defaults_to_goal_prefix(self, client):
        goal = "x" * 120
        response = await client.post("/api/tasks", json={"goal": goal})

        assert response.json()["title"] == "x" * 80

    async def test_explicit_title_and_max_steps(self, client, scheduler, llm, store_group):
        llm.script("planner", llm.plan("A", "B", "C", "D", "E"))

        response = await client.post(
            "/api/tasks",
            json={"goal": "plan a trip", "title": "Trip", "max_steps": 2},
        )

        data = response.json()
        assert data["title"] == "Trip"
        assert data["max_steps"] == 2
        await scheduler.wait_idle()
        assert await store_group.step_store.count_steps(data["task_id"]) == 2

    async def test_max_steps_clamped_to_limit(self, client):
        response = await client.post("/api/tasks", json={"goal": "big job", "max_steps": 500})

        assert response.status_code == 201
        assert response.json()["max_steps"] == 20

    async def test_blank_goal_rejected(self, client):
        for body in ({"goal": ""}, {"goal": "   "}, {}):
            response = await client.post("/api/tasks", json=body)
            assert response.status_code == 422

    async def test_non_positive_max_steps_rejected(self, client):
        response = await client.post("/api/tasks", json={"goal": "g", "max_steps": 0})

        assert response.status_code == 422

    async def test_creation_event_recorded(self, client, scheduler):
        response = await client.post("/api/tasks", json={"goal": "write a haiku"})
        task_id = response.json()["task_id"]
        await scheduler.wait_idle()

        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        first = detail["events"][0]
        assert first["type"] == "TASK_CREATED"
        assert first["actor"] == "user"
        assert first["payload"]["goal_length"] == len("write a haiku")
        assert first["trace_id"] == f"trace-{task_id}"
        seqs = [e["task_seq"] for e in detail["events"]]
        assert seqs == list(range(1, len(seqs) + 1))


class TestQueryTasks:
    async def test_detail_includes_ordered_steps(self, client, scheduler, llm):
        llm.script("planner", llm.plan("Find", "Compare", "Report"))
        task_id = (await client.post("/api/tasks", json={"goal": "g"})).json()["task_id"]
        await scheduler.wait_idle()

        response = await client.get(f"/api/tasks/{task_id}")

        assert response.status_code == 200
        detail = response.json()
        assert detail["task"]["status"] == "completed"
        assert [s["title"] for s in detail["steps"]] == ["Find", "Compare", "Report"]
        assert [s["step_index"] for s in detail["steps"]] == [0, 1, 2]
        assert all(s["status"] == "completed" for s in detail["steps"])
        assert detail["steps"][0]["output"]["text"] == "Done: Step 1: Find"
        assert set(detail["task"]["context"]) == {"step_0", "step_1", "step_2"}
        assert [p["title"] for p in detail["task"]["plan"]] == ["Find", "Compare", "Report"]

    async def test_detail_unknown_task(self, client):
        response = await client.get("/api/tasks/01ARZ3NDEKTSV4RRFFQ69G5FAV")

        assert response.status_code == 404
        assert response.json() == {
            "error": {
                "code": "TASK_NOT_FOUND",
                "message": "Task with id 01ARZ3NDEKTSV4RRFFQ69G5FAV does not exist",
            }
        }

    async def test_list_with_step_counts(self, client, seed_task):
        older = await seed_task(TaskStatus.RUNNING, steps=3)
        newer = await seed_task(TaskStatus.PENDING)

        response = await client.get("/api/tasks")

        tasks = response.json()["tasks"]
        assert [t["task_id"] for t in tasks] == [newer.task_id, older.task_id]
        assert tasks[0]["step_count"] == 0
        assert tasks[1]["step_count"] == 3
        assert tasks[1]["completed_steps"] == 0
        assert tasks[1]["failed_steps"] == 0

    async def test_list_reports_completed_and_failed_steps(self, client, seed_task, store_group):
        task = await seed_task(TaskStatus.FAILED, steps=3)
        steps = await store_group.step_store.list_steps(task.task_id)
        async with store_group.transaction():
            await store_group.step_store.claim_step(steps[0].step_id, utc_now())
            await store_group.step_store.complete_step(
                steps[0].step_id, StepOutput(text="ok"), utc_now()
            )
            await store_group.step_store.claim_step(steps[1].step_id, utc_now())
            await store_group.step_store.record_failure(
                steps[1].step_id, "RuntimeError: boom", 1, utc_now()
            )

        response = await client.get("/api/tasks")

        listed = response.json()["tasks"][0]
        assert listed["step_count"] == 3
        assert listed["completed_steps"] == 1
        assert listed["failed_steps"] == 1

    async def test_list_filters_by_status(self, client, seed_task):
        running = await seed_task(TaskStatus.RUNNING, steps=1)
        await seed_task(TaskStatus.COMPLETED)

        response = await client.get("/api/tasks", params={"status": "running"})

        assert [t["task_id"] for t in response.json()["tasks"]] == [running.task_id]

    async def test_list_rejects_unknown_status(self, client):
        response = await client.get("/api/tasks", params={"status": "sleeping"})

        assert response.status_code == 422

    async def test_users_only_see_their_own_tasks(self, client, seed_task):
        mine = await seed_task(TaskStatus.RUNNING, steps=1, user_id="alice")
        await seed_task(TaskStatus.RUNNING, steps=1, user_id="bob")

        response = await client.get("/api/tasks", headers={"X-User-Id": "alice"})
        assert [t["task_id"] for t in response.json()["tasks"]] == [mine.task_id]

        other = await client.get(f"/api/tasks/{mine.task_id}", headers={"X-User-Id": "bob"})
        assert other.status_code == 404


class TestDeleteTask:
    async def test_delete_removes_task_steps_and_events(self, client, scheduler, store_group):
        task_id = (await client.post("/api/tasks", json={"goal": "g"})).json()["task_id"]
        await scheduler.wait_idle()

        response = await client.delete(f"/api/tasks/{task_id}")

        assert response.status_code == 200
        assert response.json() == {"task_id": task_id, "deleted": True}
        assert await store_group.task_store.get_task(task_id) is None
        assert await store_group.step_store.count_steps(task_id) == 0
        assert await store_group.event_store.get_events_for_task(task_id) == []
        assert (await client.get(f"/api/tasks/{task_id}")).status_code == 404

    async def test_delete_unknown_task(self, client):
        response = await client.delete("/api/tasks/01ARZ3NDEKTSV4RRFFQ69G5FAV")

        assert response.status_code == 404

    async def test_cycle_for_deleted_task_is_noop(self, client, app, seed_task):
        task = await seed_task(TaskStatus.RUNNING, steps=1)
        await client.delete(f"/api/tasks/{task.task_id}")

        result = await app.state.runner.run_cycle(task.task_id)

        assert result.more_work is False
        assert result.reason == "task_not_found"


class TestNotificationsApi:
    async def test_completion_notification_listed(self, client, scheduler):
        task_id = (await client.post("/api/tasks", json={"goal": "g"})).json()["task_id"]
        await scheduler.wait_idle()

        response = await client.get("/api/notifications", params={"task_id": task_id})

        notifications = response.json()["notifications"]
        assert len(notifications) == 1
        assert notifications[0]["title"] == "Task Complete: g"
        assert notifications[0]["type"] == "success"
        assert notifications[0]["source"] == "task-runner"

    async def test_notifications_scoped_to_user(self, client, scheduler):
        await client.post("/api/tasks", json={"goal": "g"}, headers={"X-User-Id": "alice"})
        await scheduler.wait_idle()

        alice = await client.get("/api/notifications", headers={"X-User-Id": "alice"})
        bob = await client.get("/api/notifications", headers={"X-User-Id": "bob"})

        assert len(alice.json()["notifications"]) == 1
        assert bob.json()["notifications"] == []

    async def test_limit_validated(self, client):
        response = await client.get("/api/notifications", params={"limit": 0})

        assert response.status_code == 422
