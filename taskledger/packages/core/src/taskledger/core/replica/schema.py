"""replica 数据库初始化

PRAGMA 配置 + 两张表 DDL + 索引创建：
- tasks: 每行一个任务，data 为 字符串 -> 字符串 字段表的 JSON
- operations: 已应用原语操作的本地日志（撤销依据）

replica 连接由 actor 工作线程独占，使用同步 sqlite3。
"""

import sqlite3

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    uuid  TEXT PRIMARY KEY,
    data  TEXT NOT NULL DEFAULT '{}'
);
"""

# operations 表 DDL
_OPERATIONS_DDL = """
CREATE TABLE IF NOT EXISTS operations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    op_id       TEXT NOT NULL,
    kind        TEXT NOT NULL,
    uuid        TEXT,
    property    TEXT,
    old_value   TEXT,
    value       TEXT,
    old_task    TEXT,
    ts          TEXT NOT NULL
);
"""

_OPERATIONS_INDEXES = [
    # 撤销时按 kind 定位最近的 undo point
    "CREATE INDEX IF NOT EXISTS idx_operations_kind ON operations(kind, id);",
]


def init_replica_db(conn: sqlite3.Connection) -> None:
    """初始化 replica 数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: autocommit 模式（isolation_level=None）的 sqlite3 连接
    """
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA busy_timeout = 5000;")

    conn.execute(_TASKS_DDL)
    conn.execute(_OPERATIONS_DDL)
    for idx_sql in _OPERATIONS_INDEXES:
        conn.execute(idx_sql)


def verify_wal_mode(conn: sqlite3.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    row = conn.execute("PRAGMA journal_mode;").fetchone()
    return row is not None and row[0].lower() == "wal"
