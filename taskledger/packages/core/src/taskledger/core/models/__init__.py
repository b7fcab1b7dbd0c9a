"""taskledger Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .context import UserContext, parse_project_from_filter
from .enums import (
    PRIORITY_RANK,
    DateFilterKind,
    FilterMode,
    OperationType,
    Priority,
    ProjectFilterKind,
    TaskStatus,
)
from .operation import (
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
    dump_operations,
    load_operations,
)
from .query import DateFilter, ProjectFilter, SortCriteria, TagFilter, TaskQuery
from .task import Annotation, Task, UdaValue, UtcDatetime, ensure_utc, utcnow

__all__ = [
    # 枚举
    "TaskStatus",
    "Priority",
    "PRIORITY_RANK",
    "OperationType",
    "FilterMode",
    "ProjectFilterKind",
    "DateFilterKind",
    # Task
    "Task",
    "Annotation",
    "UdaValue",
    "UtcDatetime",
    "ensure_utc",
    "utcnow",
    # Operation
    "Operation",
    "CreateOp",
    "UpdateOp",
    "SetFieldOp",
    "UnsetFieldOp",
    "AddTagOp",
    "RemoveTagOp",
    "AddAnnotationOp",
    "AddDependencyOp",
    "RemoveDependencyOp",
    "DeleteOp",
    "UndoPointOp",
    "dump_operations",
    "load_operations",
    # Query
    "TaskQuery",
    "ProjectFilter",
    "TagFilter",
    "DateFilter",
    "SortCriteria",
    # Context
    "UserContext",
    "parse_project_from_filter",
]
