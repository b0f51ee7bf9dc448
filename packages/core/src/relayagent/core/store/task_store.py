"""TaskStore SQLite 实现

所有状态写入都是条件更新（compare-and-swap）：调用方给出期望的当前状态，
返回值表示是否命中。此处仅提供数据库操作，事务由调用方管理。
"""

import json
from collections.abc import Iterable
from datetime import datetime

import aiosqlite

from ..clock import from_db, to_db
from ..models.enums import TaskStatus
from ..models.task import PlannedStep, Task

# update_status 允许顺带写入的列
_UPDATABLE_FIELDS = frozenset(
    {
        "pause_reason",
        "error",
        "started_at",
        "completed_at",
        "plan",
        "current_step_index",
    }
)


def _encode_field(name: str, value):
    if value is None:
        return None
    if name in ("started_at", "completed_at"):
        return to_db(value)
    if name == "plan":
        return json.dumps(
            [step.model_dump() for step in value],
            ensure_ascii=False,
        )
    return value


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, user_id, goal, title, status, plan,
                               current_step_index, context, max_steps,
                               pause_reason, error, created_at, updated_at,
                               started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.user_id,
                task.goal,
                task.title,
                task.status.value,
                _encode_field("plan", task.plan),
                task.current_step_index,
                json.dumps(task.context, ensure_ascii=False),
                task.max_steps,
                task.pause_reason,
                task.error,
                to_db(task.created_at),
                to_db(task.updated_at),
                _encode_field("started_at", task.started_at),
                _encode_field("completed_at", task.completed_at),
            ),
        )

    async def get_task(self, task_id: str, user_id: str | None = None) -> Task | None:
        """根据 task_id 查询任务；给出 user_id 时仅返回该用户的任务"""
        if user_id is None:
            cursor = await self._conn.execute(
                "SELECT * FROM tasks WHERE task_id = ?",
                (task_id,),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT * FROM tasks WHERE task_id = ? AND user_id = ?",
                (task_id, user_id),
            )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        user_id: str | None = None,
        status: str | None = None,
    ) -> list[Task]:
        """查询任务列表，支持按用户、状态筛选，按 created_at 倒序"""
        clauses: list[str] = []
        params: list = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT * FROM tasks {where} ORDER BY created_at DESC, task_id DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_status(
        self,
        task_id: str,
        expected: TaskStatus | Iterable[TaskStatus],
        new_status: TaskStatus,
        updated_at: datetime,
        **fields,
    ) -> bool:
        """条件更新任务状态

        仅当当前状态属于 expected 时写入 new_status 及 fields。

        Returns:
            True 如果命中（恰好更新一行）
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported task fields: {sorted(unknown)}")

        expected_values = (
            [expected.value]
            if isinstance(expected, TaskStatus)
            else [TaskStatus(s).value for s in expected]
        )
        if not expected_values:
            return False

        assignments = ["status = ?", "updated_at = ?"]
        params: list = [new_status.value, to_db(updated_at)]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(_encode_field(name, value))

        placeholders = ", ".join("?" for _ in expected_values)
        params.append(task_id)
        params.extend(expected_values)
        cursor = await self._conn.execute(
            f"""
            UPDATE tasks SET {", ".join(assignments)}
            WHERE task_id = ? AND status IN ({placeholders})
            """,
            params,
        )
        return cursor.rowcount == 1

    async def touch(self, task_id: str, updated_at: datetime) -> None:
        """刷新存活信号"""
        await self._conn.execute(
            "UPDATE tasks SET updated_at = ? WHERE task_id = ?",
            (to_db(updated_at), task_id),
        )

    async def touch_if_unchanged(
        self,
        task_id: str,
        status: TaskStatus,
        observed_updated_at: datetime,
        updated_at: datetime,
    ) -> bool:
        """仅当 (status, updated_at) 仍为观察值时刷新 updated_at

        用于 sweep 认领停滞任务：并发的另一轮 sweep 或任务自身的进展
        都会改变 updated_at，使本次认领失败。
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks SET updated_at = ?
            WHERE task_id = ? AND status = ? AND updated_at = ?
            """,
            (to_db(updated_at), task_id, status.value, to_db(observed_updated_at)),
        )
        return cursor.rowcount == 1

    async def list_stale(
        self,
        statuses: Iterable[TaskStatus],
        cutoff: datetime,
        limit: int,
    ) -> list[Task]:
        """查询 updated_at 早于 cutoff 的任务，最久未更新的优先"""
        values = [TaskStatus(s).value for s in statuses]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM tasks
            WHERE status IN ({placeholders}) AND updated_at < ?
            ORDER BY updated_at ASC
            LIMIT ?
            """,
            [*values, to_db(cutoff), limit],
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def set_current_step(
        self,
        task_id: str,
        step_index: int,
        updated_at: datetime,
    ) -> None:
        await self._conn.execute(
            "UPDATE tasks SET current_step_index = ?, updated_at = ? WHERE task_id = ?",
            (step_index, to_db(updated_at), task_id),
        )

    async def record_step_summary(
        self,
        task_id: str,
        key: str,
        summary: str,
        next_step_index: int,
        updated_at: datetime,
    ) -> None:
        """将步骤摘要合并进 context，并推进 current_step_index"""
        await self._conn.execute(
            """
            UPDATE tasks
            SET context = json_set(context, '$.' || ?, ?),
                current_step_index = ?,
                updated_at = ?
            WHERE task_id = ?
            """,
            (key, summary, next_step_index, to_db(updated_at), task_id),
        )

    async def delete_task(self, task_id: str) -> bool:
        """删除任务（steps / events 通过外键级联删除）"""
        cursor = await self._conn.execute(
            "DELETE FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        plan_data = json.loads(row["plan"]) if row["plan"] else []
        context_data = json.loads(row["context"]) if row["context"] else {}
        return Task(
            task_id=row["task_id"],
            user_id=row["user_id"],
            goal=row["goal"],
            title=row["title"],
            status=TaskStatus(row["status"]),
            plan=[PlannedStep.model_validate(item) for item in plan_data],
            current_step_index=row["current_step_index"],
            context={str(k): str(v) for k, v in context_data.items()},
            max_steps=row["max_steps"],
            pause_reason=row["pause_reason"],
            error=row["error"],
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
            started_at=from_db(row["started_at"]),
            completed_at=from_db(row["completed_at"]),
        )
