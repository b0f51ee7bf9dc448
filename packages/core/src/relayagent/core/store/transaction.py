"""写事务封装

同一进程内所有写入共享一个 aiosqlite 连接。写事务通过锁串行化，
整体提交或整体回滚，避免一个协程的 commit 带走另一个协程未完成的写入。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """串行化的写事务：正常退出提交，异常时回滚并继续抛出

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        lock: 该连接上的写锁
    """
    async with lock:
        try:
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise
