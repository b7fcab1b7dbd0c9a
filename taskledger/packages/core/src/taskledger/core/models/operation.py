"""Operation 数据模型

描述对单个任务的一次原子变更。Operation 批次是有序序列，
按顺序应用，并作为一个整体原子提交。

所有变体以 type 字段区分，可序列化为 JSON 并无损还原。
"""

from collections.abc import Iterable
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .enums import OperationType
from .task import UtcDatetime


class _BaseOp(BaseModel):
    """Operation 公共配置：不可变，按值比较"""

    model_config = ConfigDict(frozen=True)


class CreateOp(_BaseOp):
    """以完整字段集创建任务，data 为任务序列化后的结构化数据"""

    type: Literal[OperationType.CREATE] = OperationType.CREATE
    uuid: UUID
    data: dict[str, Any] = Field(default_factory=dict)


class UpdateOp(_BaseOp):
    """通用字段替换，old 值保留用于冲突检测（当前不强制）"""

    type: Literal[OperationType.UPDATE] = OperationType.UPDATE
    uuid: UUID
    key: str
    old: Any = None
    new: Any = None


class SetFieldOp(_BaseOp):
    """设置单个字符串字段"""

    type: Literal[OperationType.SET_FIELD] = OperationType.SET_FIELD
    uuid: UUID
    key: str
    value: str


class UnsetFieldOp(_BaseOp):
    """清除单个字段"""

    type: Literal[OperationType.UNSET_FIELD] = OperationType.UNSET_FIELD
    uuid: UUID
    key: str


class AddTagOp(_BaseOp):
    type: Literal[OperationType.ADD_TAG] = OperationType.ADD_TAG
    uuid: UUID
    tag: str


class RemoveTagOp(_BaseOp):
    type: Literal[OperationType.REMOVE_TAG] = OperationType.REMOVE_TAG
    uuid: UUID
    tag: str


class AddAnnotationOp(_BaseOp):
    type: Literal[OperationType.ADD_ANNOTATION] = OperationType.ADD_ANNOTATION
    uuid: UUID
    entry: UtcDatetime
    description: str


class AddDependencyOp(_BaseOp):
    type: Literal[OperationType.ADD_DEPENDENCY] = OperationType.ADD_DEPENDENCY
    uuid: UUID
    depends_on: UUID


class RemoveDependencyOp(_BaseOp):
    type: Literal[OperationType.REMOVE_DEPENDENCY] = OperationType.REMOVE_DEPENDENCY
    uuid: UUID
    depends_on: UUID


class DeleteOp(_BaseOp):
    """逻辑删除：映射为 status 字段变更，而非物理删除"""

    type: Literal[OperationType.DELETE] = OperationType.DELETE
    uuid: UUID


class UndoPointOp(_BaseOp):
    """撤销边界标记，每个可撤销单元以一个 UndoPoint 开头"""

    type: Literal[OperationType.UNDO_POINT] = OperationType.UNDO_POINT


Operation = Annotated[
    CreateOp
    | UpdateOp
    | SetFieldOp
    | UnsetFieldOp
    | AddTagOp
    | RemoveTagOp
    | AddAnnotationOp
    | AddDependencyOp
    | RemoveDependencyOp
    | DeleteOp
    | UndoPointOp,
    Field(discriminator="type"),
]

_operation_batch_adapter: TypeAdapter[list[Operation]] = TypeAdapter(list[Operation])


def dump_operations(ops: Iterable[Operation]) -> str:
    """将 Operation 批次序列化为 JSON 文本"""
    return _operation_batch_adapter.dump_json(list(ops)).decode("utf-8")


def load_operations(text: str | bytes) -> list[Operation]:
    """从 JSON 文本还原 Operation 批次"""
    return _operation_batch_adapter.validate_json(text)
