"""TaskStore 单元测试

测试内容：
1. 创建 / 查询 / 用户隔离
2. 条件状态更新（compare-and-swap）
3. 停滞查询与条件 touch
4. 步骤摘要合并进 context
5. 删除级联
"""

from relayagent.core.clock import utc_now
from relayagent.core.models import (
    ActorType,
    EventType,
    PlannedStep,
    StateTransitionPayload,
    TaskStatus,
)


class TestTaskCrud:
    async def test_create_and_get(self, store_group, make_task):
        task = make_task()
        async with store_group.transaction():
            await store_group.task_store.create_task(task)

        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded is not None
        assert loaded.goal == task.goal
        assert loaded.status == TaskStatus.PENDING
        assert loaded.created_at == task.created_at

    async def test_get_scoped_to_user(self, store_group, make_task):
        task = make_task(user_id="alice")
        async with store_group.transaction():
            await store_group.task_store.create_task(task)

        assert await store_group.task_store.get_task(task.task_id, user_id="alice")
        assert await store_group.task_store.get_task(task.task_id, user_id="bob") is None

    async def test_list_filters_user_and_status(self, store_group, make_task):
        mine = make_task(user_id="alice")
        done = make_task(user_id="alice", status=TaskStatus.COMPLETED)
        other = make_task(user_id="bob")
        async with store_group.transaction():
            for t in (mine, done, other):
                await store_group.task_store.create_task(t)

        alice = await store_group.task_store.list_tasks(user_id="alice")
        assert {t.task_id for t in alice} == {mine.task_id, done.task_id}

        completed = await store_group.task_store.list_tasks(user_id="alice", status="completed")
        assert [t.task_id for t in completed] == [done.task_id]


class TestCompareAndSwap:
    async def test_update_hits_expected_status(self, store_group, make_task):
        task = make_task(status=TaskStatus.PLANNING)
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            plan = [PlannedStep(title="a", instruction="b")]
            hit = await store_group.task_store.update_status(
                task.task_id,
                expected=TaskStatus.PLANNING,
                new_status=TaskStatus.RUNNING,
                updated_at=utc_now(),
                plan=plan,
                current_step_index=0,
            )
        assert hit is True
        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.status == TaskStatus.RUNNING
        assert loaded.plan[0].title == "a"

    async def test_update_misses_on_other_status(self, store_group, make_task):
        task = make_task(status=TaskStatus.PAUSED)
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            hit = await store_group.task_store.update_status(
                task.task_id,
                expected={TaskStatus.RUNNING, TaskStatus.PLANNING},
                new_status=TaskStatus.COMPLETED,
                updated_at=utc_now(),
            )
        assert hit is False
        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.status == TaskStatus.PAUSED

    async def test_clearing_pause_reason(self, store_group, make_task):
        task = make_task(status=TaskStatus.PAUSED, pause_reason="User paused")
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            await store_group.task_store.update_status(
                task.task_id,
                expected=TaskStatus.PAUSED,
                new_status=TaskStatus.RUNNING,
                updated_at=utc_now(),
                pause_reason=None,
            )
        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.pause_reason is None


class TestStaleness:
    async def test_list_stale_oldest_first(self, store_group, make_task, minutes_ago):
        old = make_task(status=TaskStatus.RUNNING, updated_at=minutes_ago(30))
        older = make_task(status=TaskStatus.RUNNING, updated_at=minutes_ago(60))
        fresh = make_task(status=TaskStatus.RUNNING)
        paused = make_task(status=TaskStatus.PAUSED, updated_at=minutes_ago(90))
        async with store_group.transaction():
            for t in (old, older, fresh, paused):
                await store_group.task_store.create_task(t)

        stale = await store_group.task_store.list_stale(
            [TaskStatus.RUNNING], cutoff=minutes_ago(2), limit=10
        )
        assert [t.task_id for t in stale] == [older.task_id, old.task_id]

    async def test_list_stale_respects_limit(self, store_group, make_task, minutes_ago):
        async with store_group.transaction():
            for i in range(4):
                await store_group.task_store.create_task(
                    make_task(status=TaskStatus.PENDING, updated_at=minutes_ago(10 + i))
                )
        stale = await store_group.task_store.list_stale(
            [TaskStatus.PENDING], cutoff=minutes_ago(2), limit=2
        )
        assert len(stale) == 2

    async def test_touch_if_unchanged_only_once(self, store_group, make_task, minutes_ago):
        task = make_task(status=TaskStatus.RUNNING, updated_at=minutes_ago(10))
        async with store_group.transaction():
            await store_group.task_store.create_task(task)

        async with store_group.transaction():
            first = await store_group.task_store.touch_if_unchanged(
                task.task_id, TaskStatus.RUNNING, task.updated_at, utc_now()
            )
        async with store_group.transaction():
            second = await store_group.task_store.touch_if_unchanged(
                task.task_id, TaskStatus.RUNNING, task.updated_at, utc_now()
            )
        assert first is True
        assert second is False


class TestContextAndDelete:
    async def test_record_step_summary_merges(self, store_group, make_task):
        task = make_task(status=TaskStatus.RUNNING, context={"step_0": "first"})
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            await store_group.task_store.record_step_summary(
                task.task_id, "step_1", "second", next_step_index=2, updated_at=utc_now()
            )
        loaded = await store_group.task_store.get_task(task.task_id)
        assert loaded.context == {"step_0": "first", "step_1": "second"}
        assert loaded.current_step_index == 2

    async def test_delete_cascades(self, store_group, make_task, make_steps):
        task = make_task(status=TaskStatus.RUNNING)
        async with store_group.transaction():
            await store_group.task_store.create_task(task)
            await store_group.step_store.insert_steps(make_steps(task.task_id, 2))
            await store_group.event_store.record(
                task.task_id,
                EventType.STATE_TRANSITION,
                ActorType.SYSTEM,
                StateTransitionPayload(
                    from_status=TaskStatus.PLANNING, to_status=TaskStatus.RUNNING
                ),
                utc_now(),
            )

        async with store_group.transaction():
            assert await store_group.task_store.delete_task(task.task_id) is True

        assert await store_group.task_store.get_task(task.task_id) is None
        assert await store_group.step_store.count_steps(task.task_id) == 0
        assert await store_group.event_store.get_events_for_task(task.task_id) == []

    async def test_delete_missing(self, store_group):
        async with store_group.transaction():
            assert await store_group.task_store.delete_task("missing") is False
