"""Operation 批次构建

由任务的新旧两个版本计算最小的 Operation 序列。全部为纯函数，不抛异常：
- 新任务：UndoPoint + Create（完整字段）
- 已有任务：UndoPoint + 逐字段 diff（可能为空）
- 删除：UndoPoint + Delete
"""

from uuid import UUID

import structlog

from .models.operation import (
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
from .models.task import Task
from .replica.fields import scalar_fields

log = structlog.get_logger()


def create_from_task(task: Task) -> CreateOp:
    """以任务的完整字段构建 CreateOp

    序列化失败时记录告警并返回空 data，由映射层拒绝该批次。
    """
    try:
        data = task.model_dump(mode="json", exclude_none=True)
    except (ValueError, TypeError) as e:
        log.warning(
            "create_payload_serialization_failed",
            task_uuid=str(task.uuid),
            error=str(e),
        )
        data = {}
    return CreateOp(uuid=task.uuid, data=data)


def compute_update_ops(old: Task, new: Task) -> list[Operation]:
    """逐字段比较两个版本，生成最小 Operation 序列

    注释只比较新增（append-only），删除注释不会产生操作。
    """
    uuid = new.uuid
    ops: list[Operation] = []

    for key in ("description", "project"):
        old_value, new_value = getattr(old, key), getattr(new, key)
        if old_value != new_value:
            ops.append(UpdateOp(uuid=uuid, key=key, old=old_value, new=new_value))

    if old.status != new.status:
        ops.append(
            UpdateOp(
                uuid=uuid,
                key="status",
                old=old.status.value,
                new=new.status.value,
            )
        )

    for tag in sorted(new.tags - old.tags):
        ops.append(AddTagOp(uuid=uuid, tag=tag))
    for tag in sorted(old.tags - new.tags):
        ops.append(RemoveTagOp(uuid=uuid, tag=tag))

    for dep in sorted(new.depends - old.depends, key=str):
        ops.append(AddDependencyOp(uuid=uuid, depends_on=dep))
    for dep in sorted(old.depends - new.depends, key=str):
        ops.append(RemoveDependencyOp(uuid=uuid, depends_on=dep))

    existing = {(a.entry, a.description) for a in old.annotations}
    for ann in new.annotations:
        if (ann.entry, ann.description) not in existing:
            ops.append(
                AddAnnotationOp(uuid=uuid, entry=ann.entry, description=ann.description)
            )

    old_fields, new_fields = scalar_fields(old), scalar_fields(new)
    for key in sorted(old_fields.keys() | new_fields.keys()):
        if key not in new_fields:
            ops.append(UnsetFieldOp(uuid=uuid, key=key))
        elif old_fields.get(key) != new_fields[key]:
            ops.append(SetFieldOp(uuid=uuid, key=key, value=new_fields[key]))

    return ops


def build_save_batch(existing: Task | None, new_task: Task) -> list[Operation]:
    """构建保存批次：UndoPoint 开头，随后是 Create 或 diff"""
    ops: list[Operation] = [UndoPointOp()]
    if existing is None:
        ops.append(create_from_task(new_task))
    else:
        ops.extend(compute_update_ops(existing, new_task))
    return ops


def build_delete_batch(uuid: UUID) -> list[Operation]:
    """构建删除批次：UndoPoint + Delete（逻辑删除）"""
    return [UndoPointOp(), DeleteOp(uuid=uuid)]
