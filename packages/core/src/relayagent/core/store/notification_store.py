"""NotificationStore SQLite 实现 -- 默认的通知 sink

send() 自带写事务，可在任意位置调用；insert_notification() 供已处于写事务内的调用方使用。
"""

import asyncio

import aiosqlite

from ..clock import from_db, to_db
from ..models.enums import NotificationType
from ..models.notification import Notification
from .transaction import write_transaction


class SqliteNotificationStore:
    """NotificationSink 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def send(self, notification: Notification) -> None:
        """投递通知（持久化到 notifications 表）"""
        async with write_transaction(self._conn, self._write_lock):
            await self.insert_notification(notification)

    async def insert_notification(self, notification: Notification) -> None:
        """写入通知记录（不提交事务）"""
        await self._conn.execute(
            """
            INSERT INTO notifications (notification_id, user_id, task_id, title,
                                       body, type, source, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.notification_id,
                notification.user_id,
                notification.task_id,
                notification.title,
                notification.body,
                notification.type.value,
                notification.source,
                to_db(notification.created_at),
            ),
        )

    async def list_notifications(
        self,
        user_id: str,
        task_id: str | None = None,
        limit: int = 50,
    ) -> list[Notification]:
        """查询用户的通知，最新的在前"""
        if task_id is None:
            cursor = await self._conn.execute(
                """
                SELECT * FROM notifications WHERE user_id = ?
                ORDER BY created_at DESC, notification_id DESC LIMIT ?
                """,
                (user_id, limit),
            )
        else:
            cursor = await self._conn.execute(
                """
                SELECT * FROM notifications WHERE user_id = ? AND task_id = ?
                ORDER BY created_at DESC, notification_id DESC LIMIT ?
                """,
                (user_id, task_id, limit),
            )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        return Notification(
            notification_id=row["notification_id"],
            user_id=row["user_id"],
            task_id=row["task_id"],
            title=row["title"],
            body=row["body"],
            type=NotificationType(row["type"]),
            source=row["source"],
            created_at=from_db(row["created_at"]),
        )
