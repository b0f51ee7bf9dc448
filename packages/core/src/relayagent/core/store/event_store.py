"""EventStore SQLite 实现

事件表 append-only：只允许插入，不允许更新（随任务级联删除）。
task_seq 同一 task 内严格单调递增。
"""

import json
from datetime import datetime
from typing import Any

import aiosqlite
from pydantic import BaseModel
from ulid import ULID

from ..clock import from_db, to_db
from ..models.enums import ActorType, EventType
from ..models.event import Event


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: Event) -> None:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO events (event_id, task_id, task_seq, ts, type,
                                actor, payload, trace_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.task_id,
                event.task_seq,
                to_db(event.ts),
                event.type.value,
                event.actor.value,
                json.dumps(event.payload, ensure_ascii=False, default=str),
                event.trace_id,
            ),
        )

    async def record(
        self,
        task_id: str,
        event_type: EventType,
        actor: ActorType,
        payload: BaseModel | dict[str, Any],
        ts: datetime,
    ) -> Event:
        """构建并追加一条事件（在写事务内调用）"""
        seq = await self.get_next_task_seq(task_id)
        event = Event(
            event_id=str(ULID()),
            task_id=task_id,
            task_seq=seq,
            ts=ts,
            type=event_type,
            actor=actor,
            payload=(
                payload.model_dump(mode="json")
                if isinstance(payload, BaseModel)
                else payload
            ),
            trace_id=f"trace-{task_id}",
        )
        await self.append_event(event)
        return event

    async def get_events_for_task(self, task_id: str) -> list[Event]:
        """查询指定任务的所有事件，按 task_seq 正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM events WHERE task_id = ? ORDER BY task_seq ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）

        在事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) FROM events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> Event:
        """将数据库行转换为 Event 模型"""
        payload = json.loads(row["payload"]) if row["payload"] else {}
        return Event(
            event_id=row["event_id"],
            task_id=row["task_id"],
            task_seq=row["task_seq"],
            ts=from_db(row["ts"]),
            type=EventType(row["type"]),
            actor=ActorType(row["actor"]),
            payload=payload,
            trace_id=row["trace_id"],
        )
