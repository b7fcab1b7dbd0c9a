"""Replica 存储后端

写路径：构建 Operation 批次，经 ReplicaWrapper（actor）原子提交。
读路径：通过只读 aiosqlite 连接直接查询 replica 数据库文件。

写路径依赖注入：未注入 ReplicaWrapper 时写操作抛出 ConfigurationError。
"""

import asyncio
import json
from uuid import UUID

import aiosqlite
import structlog

from ..batch import build_delete_batch, build_save_batch
from ..config import replica_db_file
from ..exceptions import (
    ConfigurationError,
    StorageError,
    TaskLedgerError,
    UnsupportedOperationError,
)
from ..models.context import UserContext
from ..models.operation import Operation
from ..models.query import TaskQuery
from ..models.task import Task
from ..replica.fields import fields_to_task
from ..replica.wrapper import ReplicaWrapper
from .filtering import apply_query

log = structlog.get_logger()

_WRITE_PATH_NOT_CONFIGURED = "replica 写路径未配置：没有注入 ReplicaWrapper"


class ReplicaStorageBackend:
    """StorageBackend 的 replica 实现"""

    def __init__(self, db_path: str, replica: ReplicaWrapper | None = None) -> None:
        """
        Args:
            db_path: replica 目录
            replica: 写路径使用的 ReplicaWrapper，可稍后通过 set_replica 注入
        """
        self._db_path = db_path
        self._db_file = replica_db_file(db_path)
        self._replica = replica

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def replica(self) -> ReplicaWrapper | None:
        return self._replica

    def set_replica(self, replica: ReplicaWrapper) -> None:
        """注入写路径使用的 ReplicaWrapper"""
        self._replica = replica

    def last_operations(self) -> list[Operation]:
        """最近一次提交的批次（仅当注入的 wrapper 记录了它）"""
        recorded = getattr(self._replica, "last_operations", None)
        return list(recorded) if recorded else []

    def close(self) -> None:
        """关闭注入的 ReplicaWrapper"""
        if self._replica is not None:
            self._replica.close()

    def _require_replica(self) -> ReplicaWrapper:
        if self._replica is None:
            raise ConfigurationError(_WRITE_PATH_NOT_CONFIGURED)
        return self._replica

    # ---- 读路径：直接只读连接 ----

    async def _fetch_tasks(
        self, sql: str, params: tuple[str, ...] = ()
    ) -> list[Task]:
        uri = f"{self._db_file.resolve().as_uri()}?mode=ro"
        try:
            async with aiosqlite.connect(uri, uri=True) as conn:
                async with conn.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"读取 replica 失败 {self._db_file}: {e}") from e

        try:
            return [fields_to_task(UUID(uuid), json.loads(data)) for uuid, data in rows]
        except ValueError as e:
            raise StorageError(f"replica 数据格式错误 {self._db_file}: {e}") from e

    async def initialize(self) -> None:
        """校验数据库文件存在且可打开"""
        if not self._db_file.exists():
            raise StorageError(f"replica 数据库不存在: {self._db_file}")
        await self._fetch_tasks("SELECT uuid, data FROM tasks LIMIT 0")

    async def load_task(self, uuid: UUID) -> Task | None:
        tasks = await self._fetch_tasks(
            "SELECT uuid, data FROM tasks WHERE uuid = ?", (str(uuid),)
        )
        return tasks[0] if tasks else None

    async def load_all_tasks(self) -> list[Task]:
        return await self._fetch_tasks("SELECT uuid, data FROM tasks")

    async def query_tasks(
        self,
        query: TaskQuery,
        active_context: UserContext | None = None,
    ) -> list[Task]:
        return apply_query(await self.load_all_tasks(), query, active_context)

    # ---- 写路径：经 actor 提交 ----

    async def _read_existing(self, replica: ReplicaWrapper, uuid: UUID) -> Task | None:
        try:
            return await asyncio.to_thread(replica.read_task, uuid)
        except TaskLedgerError as e:
            log.warning("replica_read_failed", task_uuid=str(uuid), error=str(e))
            return None

    async def _commit(
        self, replica: ReplicaWrapper, operation: str, ops: list[Operation]
    ) -> None:
        try:
            await asyncio.to_thread(replica.commit_operations, ops)
        except TaskLedgerError as e:
            e.add_note(f"{operation} 失败")
            raise

    async def save_task(self, task: Task) -> None:
        """保存任务：读取现有版本，计算 diff 批次并提交"""
        replica = self._require_replica()
        existing = await self._read_existing(replica, task.uuid)
        ops = build_save_batch(existing, task)
        await self._commit(replica, "save_task", ops)

    async def delete_task(self, uuid: UUID) -> None:
        """逻辑删除：status 置为 deleted"""
        replica = self._require_replica()
        await self._commit(replica, "delete_task", build_delete_batch(uuid))

    async def backup(self) -> str:
        raise UnsupportedOperationError("replica 后端不支持 backup")

    async def restore(self, data: str) -> None:
        raise UnsupportedOperationError("replica 后端不支持 restore")
