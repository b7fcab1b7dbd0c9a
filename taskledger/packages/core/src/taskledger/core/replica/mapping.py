"""Operation -> replica 原语操作映射

每个 uuid 在一个批次内只读取一次快照：
- 快照存在：通过 ReplicaTask 的结构化 helper 修改聚合键
- 快照不存在（例如同一批次内刚 Create 的任务）：降级为写单个字段
  tag_<name> / dep_<uuid> / annotation_<unix_ts>

任何一个 Operation 无法映射时抛出 ReplicaMappingError，整个批次被拒绝。
"""

from collections.abc import Iterable
from uuid import UUID

from ..exceptions import ReplicaMappingError
from ..models.enums import TaskStatus
from ..models.operation import (
    AddAnnotationOp,
    AddDependencyOp,
    AddTagOp,
    CreateOp,
    DeleteOp,
    Operation,
    RemoveDependencyOp,
    RemoveTagOp,
    SetFieldOp,
    UndoPointOp,
    UnsetFieldOp,
    UpdateOp,
)
from ..models.task import Annotation, utcnow
from .engine import (
    CreateTask,
    Replica,
    ReplicaOperation,
    ReplicaTask,
    UndoPoint,
    UpdateTask,
    validate_tag,
)
from .fields import (
    ANNOTATION_PREFIX,
    DEP_PREFIX,
    TAG_PREFIX,
    format_timestamp,
    json_data_to_fields,
    json_value_to_text,
)


class _BatchMapper:
    """单个批次的映射状态：快照缓存 + 输出的原语序列"""

    def __init__(self, replica: Replica) -> None:
        self._replica = replica
        self._snapshots: dict[UUID, ReplicaTask | None] = {}
        self.ops: list[ReplicaOperation] = []

    def _snapshot(self, uuid: UUID) -> ReplicaTask | None:
        if uuid not in self._snapshots:
            self._snapshots[uuid] = self._replica.get_task(uuid)
        return self._snapshots[uuid]

    def _set(self, uuid: UUID, key: str, value: str | None) -> None:
        task = self._snapshot(uuid)
        if task is not None:
            task.set_value(key, value, self.ops)
        else:
            self.ops.append(UpdateTask(uuid=uuid, property=key, value=value))

    def map(self, op: Operation) -> None:
        match op:
            case UndoPointOp():
                self.ops.append(UndoPoint())
            case CreateOp(uuid=uuid, data=data):
                if not data:
                    raise ReplicaMappingError(f"Create 操作缺少任务数据: {uuid}")
                fields = json_data_to_fields(data)
                fields.setdefault("status", TaskStatus.PENDING.value)
                fields.setdefault("entry", format_timestamp(utcnow()))
                self._snapshot(uuid)
                self.ops.append(CreateTask(uuid=uuid))
                for key, value in fields.items():
                    self._set(uuid, key, value)
            case UpdateOp(uuid=uuid, key=key, new=new):
                self._set(uuid, key, json_value_to_text(key, new))
            case SetFieldOp(uuid=uuid, key=key, value=value):
                self._set(uuid, key, value)
            case UnsetFieldOp(uuid=uuid, key=key):
                self._set(uuid, key, None)
            case AddTagOp(uuid=uuid, tag=tag):
                validate_tag(tag)
                if (task := self._snapshot(uuid)) is not None:
                    task.add_tag(tag, self.ops)
                else:
                    self._set(uuid, f"{TAG_PREFIX}{tag}", "")
            case RemoveTagOp(uuid=uuid, tag=tag):
                validate_tag(tag)
                if (task := self._snapshot(uuid)) is not None:
                    task.remove_tag(tag, self.ops)
                else:
                    self._set(uuid, f"{TAG_PREFIX}{tag}", None)
            case AddAnnotationOp(uuid=uuid, entry=entry, description=description):
                if (task := self._snapshot(uuid)) is not None:
                    task.add_annotation(
                        Annotation(entry=entry, description=description), self.ops
                    )
                else:
                    key = f"{ANNOTATION_PREFIX}{int(entry.timestamp())}"
                    self._set(uuid, key, description)
            case AddDependencyOp(uuid=uuid, depends_on=dep):
                if (task := self._snapshot(uuid)) is not None:
                    task.add_dependency(dep, self.ops)
                else:
                    self._set(uuid, f"{DEP_PREFIX}{dep}", "")
            case RemoveDependencyOp(uuid=uuid, depends_on=dep):
                if (task := self._snapshot(uuid)) is not None:
                    task.remove_dependency(dep, self.ops)
                else:
                    self._set(uuid, f"{DEP_PREFIX}{dep}", None)
            case DeleteOp(uuid=uuid):
                self._set(uuid, "status", TaskStatus.DELETED.value)
                self._set(uuid, "end", format_timestamp(utcnow()))
            case _:
                raise ReplicaMappingError(f"未知的 Operation 类型: {type(op).__name__}")


def to_replica_operations(
    replica: Replica, ops: Iterable[Operation]
) -> list[ReplicaOperation]:
    """将 Operation 批次转换为 replica 原语序列

    Raises:
        ReplicaMappingError: 任一 Operation 无法映射
    """
    mapper = _BatchMapper(replica)
    for op in ops:
        mapper.map(op)
    return mapper.ops
