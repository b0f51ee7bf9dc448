"""StepStore SQLite 实现

步骤状态只通过条件更新推进。claim_step 是整个引擎唯一的互斥点：
UPDATE ... WHERE status = 'pending'，rowcount 决定谁赢得竞争。
"""

import json
from collections.abc import Iterable
from datetime import datetime

import aiosqlite

from ..clock import from_db, to_db
from ..models.enums import StepStatus
from ..models.step import Step, StepOutput


class SqliteStepStore:
    """StepStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_steps(self, steps: list[Step]) -> None:
        """批量写入步骤（仅在规划时调用一次）"""
        await self._conn.executemany(
            """
            INSERT INTO steps (step_id, task_id, step_index, title, instruction,
                               tool_name, status, retry_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    step.step_id,
                    step.task_id,
                    step.step_index,
                    step.title,
                    step.instruction,
                    step.tool_name,
                    step.status.value,
                    step.retry_count,
                )
                for step in steps
            ],
        )

    async def get_step(self, step_id: str) -> Step | None:
        cursor = await self._conn.execute(
            "SELECT * FROM steps WHERE step_id = ?",
            (step_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_step(row) if row else None

    async def list_steps(self, task_id: str) -> list[Step]:
        """查询任务的全部步骤，按 step_index 正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM steps WHERE task_id = ? ORDER BY step_index ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_step(row) for row in rows]

    async def count_steps(self, task_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM steps WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def step_counts(self, task_ids: Iterable[str]) -> dict[str, tuple[int, int, int]]:
        """批量统计步骤数：task_id -> (总数, 已完成数, 已失败数)"""
        ids = list(task_ids)
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self._conn.execute(
            f"""
            SELECT task_id,
                   COUNT(*) AS total,
                   SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS done,
                   SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed
            FROM steps
            WHERE task_id IN ({placeholders})
            GROUP BY task_id
            """,
            ids,
        )
        rows = await cursor.fetchall()
        return {
            row["task_id"]: (row["total"], row["done"] or 0, row["failed"] or 0)
            for row in rows
        }

    async def get_first_open_step(self, task_id: str) -> Step | None:
        """下标最小的未完成步骤；全部完成时返回 None"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM steps
            WHERE task_id = ? AND status != 'completed'
            ORDER BY step_index ASC
            LIMIT 1
            """,
            (task_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_step(row) if row else None

    async def claim_step(self, step_id: str, started_at: datetime) -> bool:
        """原子认领：pending -> running

        Returns:
            True 表示本调用赢得认领；False 表示已被其他 cycle 抢先
        """
        cursor = await self._conn.execute(
            """
            UPDATE steps SET status = 'running', started_at = ?
            WHERE step_id = ? AND status = 'pending'
            """,
            (to_db(started_at), step_id),
        )
        return cursor.rowcount == 1

    async def complete_step(
        self,
        step_id: str,
        output: StepOutput,
        completed_at: datetime,
    ) -> bool:
        """running -> completed，写入产出"""
        cursor = await self._conn.execute(
            """
            UPDATE steps
            SET status = 'completed', output = ?, error = NULL, completed_at = ?
            WHERE step_id = ? AND status = 'running'
            """,
            (output.model_dump_json(), to_db(completed_at), step_id),
        )
        return cursor.rowcount == 1

    async def record_failure(
        self,
        step_id: str,
        error: str,
        max_attempts: int,
        now: datetime,
        expected_started_at: datetime | None = None,
    ) -> Step | None:
        """记录一次失败尝试

        retry_count + 1 后未达上限则重置为 pending，达到上限则置为 failed。
        仅对 running 的步骤生效；给出 expected_started_at 时还要求租约未被他人回收。

        Returns:
            更新后的 Step；未命中时返回 None
        """
        sql = """
            UPDATE steps
            SET retry_count = retry_count + 1,
                error = ?,
                status = CASE WHEN retry_count + 1 >= ? THEN 'failed' ELSE 'pending' END,
                started_at = CASE WHEN retry_count + 1 >= ? THEN started_at ELSE NULL END,
                completed_at = CASE WHEN retry_count + 1 >= ? THEN ? ELSE NULL END
            WHERE step_id = ? AND status = 'running'
        """
        params: list = [error, max_attempts, max_attempts, max_attempts, to_db(now), step_id]
        if expected_started_at is not None:
            sql += " AND started_at = ?"
            params.append(to_db(expected_started_at))
        cursor = await self._conn.execute(sql, params)
        if cursor.rowcount != 1:
            return None
        return await self.get_step(step_id)

    @staticmethod
    def _row_to_step(row: aiosqlite.Row) -> Step:
        """将数据库行转换为 Step 模型"""
        output = StepOutput.model_validate(json.loads(row["output"])) if row["output"] else None
        return Step(
            step_id=row["step_id"],
            task_id=row["task_id"],
            step_index=row["step_index"],
            title=row["title"],
            instruction=row["instruction"],
            tool_name=row["tool_name"],
            status=StepStatus(row["status"]),
            retry_count=row["retry_count"],
            error=row["error"],
            output=output,
            started_at=from_db(row["started_at"]),
            completed_at=from_db(row["completed_at"]),
        )
