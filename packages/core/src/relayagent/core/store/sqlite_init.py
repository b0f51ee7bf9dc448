"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id             TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    goal                TEXT NOT NULL,
    title               TEXT NOT NULL DEFAULT '',
    status              TEXT NOT NULL DEFAULT 'pending',
    plan                TEXT NOT NULL DEFAULT '[]',
    current_step_index  INTEGER NOT NULL DEFAULT 0,
    context             TEXT NOT NULL DEFAULT '{}',
    max_steps           INTEGER NOT NULL DEFAULT 20,
    pause_reason        TEXT,
    error               TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    started_at          TEXT,
    completed_at        TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_created ON tasks(user_id, created_at DESC);",
    # stall sweep 按 (status, updated_at) 扫描
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_updated ON tasks(status, updated_at);",
]

# steps 表 DDL
_STEPS_DDL = """
CREATE TABLE IF NOT EXISTS steps (
    step_id       TEXT PRIMARY KEY,
    task_id       TEXT NOT NULL,
    step_index    INTEGER NOT NULL,
    title         TEXT NOT NULL,
    instruction   TEXT NOT NULL,
    tool_name     TEXT,
    status        TEXT NOT NULL DEFAULT 'pending',
    retry_count   INTEGER NOT NULL DEFAULT 0,
    error         TEXT,
    output        TEXT,
    started_at    TEXT,
    completed_at  TEXT,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
);
"""

_STEPS_INDEXES = [
    # 任务内步骤下标唯一（0..N-1 连续由 Planner 一次性写入保证）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_steps_task_index ON steps(task_id, step_index);",
]

# events 表 DDL
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id  TEXT PRIMARY KEY,
    task_id   TEXT NOT NULL,
    task_seq  INTEGER NOT NULL,
    ts        TEXT NOT NULL,
    type      TEXT NOT NULL,
    actor     TEXT NOT NULL,
    payload   TEXT NOT NULL DEFAULT '{}',
    trace_id  TEXT NOT NULL DEFAULT '',

    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
);
"""

_EVENTS_INDEXES = [
    # 任务内事件序号唯一约束（确保 task_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_task_seq ON events(task_id, task_seq);",
]

# notifications 表 DDL（不随任务删除，属于用户收件箱）
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id  TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    task_id          TEXT,
    title            TEXT NOT NULL,
    body             TEXT NOT NULL,
    type             TEXT NOT NULL DEFAULT 'info',
    source           TEXT NOT NULL DEFAULT '',
    created_at       TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_STEPS_DDL)
    await conn.execute(_EVENTS_DDL)
    await conn.execute(_NOTIFICATIONS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _STEPS_INDEXES + _EVENTS_INDEXES + _NOTIFICATIONS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
