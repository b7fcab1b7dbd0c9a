"""嵌入式 replica 引擎

replica 是一个本地 SQLite 数据库：tasks 表存放每个任务的字段表，
operations 表记录已应用的原语操作，用于撤销。

原语操作只有四种：CreateTask / UpdateTask / DeleteTask / UndoPoint。
一个原语批次在同一 SQLite 事务内提交，任何一步失败则整体回滚。

Replica 对象持有线程绑定的 sqlite3 连接，只能在创建它的线程上使用
（由 ReplicaActor 的工作线程独占）。
"""

import json
import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID

import structlog
from ulid import ULID

from ..config import replica_db_file
from ..exceptions import (
    ReplicaCommitError,
    ReplicaMappingError,
    ReplicaOpenError,
    StorageError,
)
from ..models.task import Annotation, utcnow
from .fields import (
    ANNOTATION_PREFIX,
    DEP_PREFIX,
    TAG_PREFIX,
    format_annotations,
    format_timestamp,
    join_words,
    parse_annotations,
)
from .schema import init_replica_db

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CreateTask:
    """创建空任务（任务已存在时为 no-op）"""

    uuid: UUID


@dataclass(frozen=True, slots=True)
class UpdateTask:
    """设置单个字段，value 为 None 表示清除"""

    uuid: UUID
    property: str
    value: str | None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class DeleteTask:
    """物理删除任务（撤销时可恢复）"""

    uuid: UUID


@dataclass(frozen=True, slots=True)
class UndoPoint:
    """撤销边界"""


ReplicaOperation = CreateTask | UpdateTask | DeleteTask | UndoPoint


def validate_tag(tag: str) -> None:
    """标签必须非空且不含空白

    Raises:
        ReplicaMappingError: 标签不合法
    """
    if not tag or any(ch.isspace() for ch in tag):
        raise ReplicaMappingError(f"非法标签: {tag!r}")


class ReplicaTask:
    """replica 中任务的快照，附带结构化修改 helper

    helper 只修改快照并把对应的原语操作追加到 ops，
    实际写入在 Replica.commit_operations 时发生。
    tags / depends / annotations 以聚合键维护，遇到降级键时合并并清除。
    """

    def __init__(self, uuid: UUID, data: dict[str, str]) -> None:
        self.uuid = uuid
        self._data = dict(data)

    def get_value(self, key: str) -> str | None:
        return self._data.get(key)

    def get_data(self) -> dict[str, str]:
        return dict(self._data)

    def set_value(
        self, key: str, value: str | None, ops: list[ReplicaOperation]
    ) -> None:
        """设置/清除字段，并记录 UpdateTask"""
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        ops.append(UpdateTask(uuid=self.uuid, property=key, value=value))

    def _legacy_keys(self, prefix: str) -> list[str]:
        return [k for k in self._data if k.startswith(prefix) and len(k) > len(prefix)]

    def _write_aggregate(
        self,
        key: str,
        text: str,
        legacy_prefix: str,
        ops: list[ReplicaOperation],
    ) -> None:
        legacy_keys = self._legacy_keys(legacy_prefix)
        if not legacy_keys and text == self._data.get(key, ""):
            return
        for legacy in legacy_keys:
            self.set_value(legacy, None, ops)
        self.set_value(key, text or None, ops)

    # ---- tags ----

    def get_tags(self) -> set[str]:
        tags = set(self._data.get("tags", "").split())
        tags.update(k.removeprefix(TAG_PREFIX) for k in self._legacy_keys(TAG_PREFIX))
        return tags

    def add_tag(self, tag: str, ops: list[ReplicaOperation]) -> None:
        validate_tag(tag)
        self._write_aggregate("tags", join_words(self.get_tags() | {tag}), TAG_PREFIX, ops)

    def remove_tag(self, tag: str, ops: list[ReplicaOperation]) -> None:
        validate_tag(tag)
        self._write_aggregate("tags", join_words(self.get_tags() - {tag}), TAG_PREFIX, ops)

    # ---- depends ----

    def get_dependencies(self) -> set[UUID]:
        deps = set()
        tokens = self._data.get("depends", "").split()
        tokens += [k.removeprefix(DEP_PREFIX) for k in self._legacy_keys(DEP_PREFIX)]
        for token in tokens:
            try:
                deps.add(UUID(token))
            except ValueError:
                continue
        return deps

    def add_dependency(self, dep: UUID, ops: list[ReplicaOperation]) -> None:
        deps = self.get_dependencies() | {dep}
        self._write_aggregate("depends", join_words(deps), DEP_PREFIX, ops)

    def remove_dependency(self, dep: UUID, ops: list[ReplicaOperation]) -> None:
        deps = self.get_dependencies() - {dep}
        self._write_aggregate("depends", join_words(deps), DEP_PREFIX, ops)

    # ---- annotations ----

    def get_annotations(self) -> list[Annotation]:
        return parse_annotations(self._data.get("annotations", ""))

    def add_annotation(
        self, annotation: Annotation, ops: list[ReplicaOperation]
    ) -> None:
        """追加注释（同一时间戳、同一内容也会重复追加）"""
        annotations = self.get_annotations()
        for legacy in self._legacy_keys(ANNOTATION_PREFIX):
            stamp = legacy.removeprefix(ANNOTATION_PREFIX)
            if stamp.isdigit():
                annotations.append(
                    Annotation(
                        entry=datetime.fromtimestamp(int(stamp), UTC),
                        description=self._data[legacy],
                    )
                )
        annotations.append(annotation)
        annotations.sort(key=lambda a: a.entry)
        self._write_aggregate(
            "annotations", format_annotations(annotations), ANNOTATION_PREFIX, ops
        )


class Replica:
    """嵌入式 replica（线程绑定）"""

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn = conn
        self._path = path

    @classmethod
    def open(cls, path: str | Path, *, create_if_missing: bool = True) -> "Replica":
        """打开（必要时创建）replica 目录

        Raises:
            ReplicaOpenError: 目录无法创建或数据库无法打开
        """
        path = Path(path)
        db_file = replica_db_file(path)
        try:
            if create_if_missing:
                path.mkdir(parents=True, exist_ok=True)
            elif not db_file.exists():
                raise FileNotFoundError(f"replica 数据库不存在: {db_file}")
            conn = sqlite3.connect(str(db_file), isolation_level=None)
        except (OSError, sqlite3.Error) as e:
            raise ReplicaOpenError(path, e) from e

        try:
            init_replica_db(conn)
        except sqlite3.Error as e:
            conn.close()
            raise ReplicaOpenError(path, e) from e
        return cls(conn, path)

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        self._conn.close()

    # ---- 读取 ----

    def get_task_data(self, uuid: UUID) -> dict[str, str] | None:
        row = self._conn.execute(
            "SELECT data FROM tasks WHERE uuid = ?", (str(uuid),)
        ).fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    def get_task(self, uuid: UUID) -> ReplicaTask | None:
        data = self.get_task_data(uuid)
        if data is None:
            return None
        return ReplicaTask(uuid, data)

    def all_task_data(self) -> dict[UUID, dict[str, str]]:
        rows = self._conn.execute("SELECT uuid, data FROM tasks").fetchall()
        return {UUID(uuid): json.loads(data) for uuid, data in rows}

    def num_local_operations(self) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM operations WHERE kind != 'undo_point'"
        ).fetchone()
        return row[0]

    def num_undo_points(self) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM operations WHERE kind = 'undo_point'"
        ).fetchone()
        return row[0]

    # ---- 写入 ----

    def commit_operations(
        self,
        ops: Iterable[ReplicaOperation],
        *,
        before_commit: Callable[[], bool] | None = None,
    ) -> None:
        """在单个事务内应用原语批次

        Args:
            ops: 原语批次
            before_commit: COMMIT 前调用，返回 False 时回滚并放弃提交

        Raises:
            ReplicaCommitError: 任一操作失败或提交被放弃（事务已回滚）
        """
        ops = list(ops)
        if not ops:
            return
        try:
            self._conn.execute("BEGIN IMMEDIATE")
            for op in ops:
                self._apply(op)
            if before_commit is not None and not before_commit():
                raise ReplicaCommitError("replica 提交已取消")
            self._conn.execute("COMMIT")
        except (sqlite3.Error, StorageError) as e:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            if isinstance(e, ReplicaCommitError):
                raise
            raise ReplicaCommitError(f"replica 提交失败: {e}") from e

    def _apply(self, op: ReplicaOperation) -> None:
        match op:
            case CreateTask(uuid=uuid):
                if self.get_task_data(uuid) is not None:
                    return
                self._conn.execute(
                    "INSERT INTO tasks (uuid, data) VALUES (?, '{}')", (str(uuid),)
                )
                self._log_operation("create", uuid=uuid)
            case UpdateTask(uuid=uuid, property=prop, value=value, timestamp=ts):
                data = self.get_task_data(uuid)
                if data is None:
                    raise ReplicaCommitError(f"更新不存在的任务: {uuid}")
                old_value = data.get(prop)
                if value is None:
                    data.pop(prop, None)
                else:
                    data[prop] = value
                self._write_data(uuid, data)
                self._log_operation(
                    "update",
                    uuid=uuid,
                    prop=prop,
                    old_value=old_value,
                    value=value,
                    ts=ts,
                )
            case DeleteTask(uuid=uuid):
                data = self.get_task_data(uuid)
                if data is None:
                    return
                self._conn.execute("DELETE FROM tasks WHERE uuid = ?", (str(uuid),))
                self._log_operation("delete", uuid=uuid, old_task=json.dumps(data))
            case UndoPoint():
                self._log_operation("undo_point")

    def _write_data(self, uuid: UUID, data: dict[str, str]) -> None:
        self._conn.execute(
            "UPDATE tasks SET data = ? WHERE uuid = ?",
            (json.dumps(data, sort_keys=True), str(uuid)),
        )

    def _log_operation(
        self,
        kind: str,
        *,
        uuid: UUID | None = None,
        prop: str | None = None,
        old_value: str | None = None,
        value: str | None = None,
        old_task: str | None = None,
        ts: datetime | None = None,
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO operations (op_id, kind, uuid, property, old_value,
                                    value, old_task, ts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(ULID()),
                kind,
                str(uuid) if uuid else None,
                prop,
                old_value,
                value,
                old_task,
                format_timestamp(ts or utcnow()),
            ),
        )

    # ---- 撤销 ----

    def undo(self, *, before_commit: Callable[[], bool] | None = None) -> bool:
        """撤销最近一个 undo point 之后的全部操作

        末尾没有实际操作的 undo point 会被跳过。
        before_commit 与 commit_operations 相同。

        Returns:
            是否有操作被撤销
        """
        cursor = self._conn.execute(
            "SELECT id, kind, uuid, property, old_value, old_task "
            "FROM operations ORDER BY id DESC"
        )
        to_revert = []
        cutoff = 0
        for row in cursor:
            if row[1] == "undo_point":
                if to_revert:
                    cutoff = row[0]
                    break
                continue
            to_revert.append(row)
        cursor.close()

        if not to_revert:
            return False

        try:
            self._conn.execute("BEGIN IMMEDIATE")
            for _, kind, uuid, prop, old_value, old_task in to_revert:
                self._revert(kind, UUID(uuid), prop, old_value, old_task)
            self._conn.execute("DELETE FROM operations WHERE id >= ?", (cutoff,))
            if before_commit is not None and not before_commit():
                raise ReplicaCommitError("replica 撤销已取消")
            self._conn.execute("COMMIT")
        except (sqlite3.Error, StorageError) as e:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise ReplicaCommitError(f"replica 撤销失败: {e}") from e

        log.info("replica_undo_applied", reverted=len(to_revert), path=str(self._path))
        return True

    def _revert(
        self,
        kind: str,
        uuid: UUID,
        prop: str | None,
        old_value: str | None,
        old_task: str | None,
    ) -> None:
        if kind == "create":
            self._conn.execute("DELETE FROM tasks WHERE uuid = ?", (str(uuid),))
        elif kind == "delete":
            self._conn.execute(
                "INSERT OR REPLACE INTO tasks (uuid, data) VALUES (?, ?)",
                (str(uuid), old_task or "{}"),
            )
        elif kind == "update":
            data = self.get_task_data(uuid)
            if data is None:
                raise ReplicaCommitError(f"撤销时任务不存在: {uuid}")
            if old_value is None:
                data.pop(prop, None)
            else:
                data[prop] = old_value
            self._write_data(uuid, data)
