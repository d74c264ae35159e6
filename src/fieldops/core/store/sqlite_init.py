"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引 + append-only 触发器。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（status 列是 activities 的缓存投影）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'PREPARING',
    title            TEXT NOT NULL DEFAULT '',
    description      TEXT NOT NULL DEFAULT '',
    customer_name    TEXT,
    customer_phone   TEXT,
    geo_location     TEXT,
    expected_revenue TEXT,
    assignee_ids     TEXT NOT NULL DEFAULT '[]',
    started_at       TEXT,
    completed_at     TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# activities 表 DDL（append-only）
_ACTIVITIES_DDL = """
CREATE TABLE IF NOT EXISTS activities (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_id     TEXT NOT NULL UNIQUE,
    topic           TEXT NOT NULL,
    action          TEXT NOT NULL,
    payload         TEXT NOT NULL DEFAULT '{}',
    user_id         TEXT,
    created_at      TEXT NOT NULL,
    idempotency_key TEXT
);
"""

_ACTIVITIES_INDEXES = [
    # topic 内按序号查询
    "CREATE INDEX IF NOT EXISTS idx_activities_topic_seq ON activities(topic, seq);",
    "CREATE INDEX IF NOT EXISTS idx_activities_topic_action ON activities(topic, action);",
    # 幂等键唯一约束（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_activities_idempotency_key "
        "ON activities(idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]

# 数据库层面兜底：activities 不允许 UPDATE / DELETE
_ACTIVITIES_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_activities_no_update
    BEFORE UPDATE ON activities
    BEGIN
        SELECT RAISE(ABORT, 'activities is append-only');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_activities_no_delete
    BEFORE DELETE ON activities
    BEGIN
        SELECT RAISE(ABORT, 'activities is append-only');
    END;
    """,
]

# payments 表 DDL
_PAYMENTS_DDL = """
CREATE TABLE IF NOT EXISTS payments (
    payment_id            TEXT PRIMARY KEY,
    task_id               INTEGER NOT NULL,
    amount                TEXT NOT NULL,
    currency              TEXT NOT NULL DEFAULT 'VND',
    collected_by          TEXT NOT NULL,
    collected_at          TEXT NOT NULL,
    invoice_attachment_id TEXT,
    notes                 TEXT,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_PAYMENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_payments_task_id ON payments(task_id);",
]

# attachments 表 DDL（存储协作方的本地实现使用）
_ATTACHMENTS_DDL = """
CREATE TABLE IF NOT EXISTS attachments (
    attachment_id     TEXT PRIMARY KEY,
    task_id           INTEGER NOT NULL,
    mime_type         TEXT NOT NULL DEFAULT 'application/octet-stream',
    size              INTEGER NOT NULL DEFAULT 0,
    original_filename TEXT NOT NULL DEFAULT '',
    uploaded_by       TEXT NOT NULL,
    created_at        TEXT NOT NULL,
    storage_ref       TEXT,
    sha256            TEXT NOT NULL DEFAULT '',
    claimed           INTEGER NOT NULL DEFAULT 0,
    deleted_at        TEXT
);
"""

_ATTACHMENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_attachments_task_id ON attachments(task_id);",
    "CREATE INDEX IF NOT EXISTS idx_attachments_unclaimed ON attachments(claimed, created_at);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引 + 触发器

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_ACTIVITIES_DDL)
    await conn.execute(_PAYMENTS_DDL)
    await conn.execute(_ATTACHMENTS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _ACTIVITIES_INDEXES + _PAYMENTS_INDEXES + _ATTACHMENTS_INDEXES:
        await conn.execute(idx_sql)

    for trigger_sql in _ACTIVITIES_TRIGGERS:
        await conn.execute(trigger_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
