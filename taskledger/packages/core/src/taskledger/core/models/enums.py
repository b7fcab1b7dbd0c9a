"""枚举定义

包含 TaskStatus、Priority、OperationType 以及查询相关的过滤枚举。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """任务状态"""

    PENDING = "pending"
    COMPLETED = "completed"
    DELETED = "deleted"
    WAITING = "waiting"
    RECURRING = "recurring"


class Priority(StrEnum):
    """任务优先级，序列化为单字母"""

    LOW = "L"
    MEDIUM = "M"
    HIGH = "H"


# 优先级排序权重（数值越大越优先）
PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
}


class OperationType(StrEnum):
    """Operation 变体标识（序列化 discriminator）"""

    CREATE = "create"
    UPDATE = "update"
    SET_FIELD = "set_field"
    UNSET_FIELD = "unset_field"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    ADD_ANNOTATION = "add_annotation"
    ADD_DEPENDENCY = "add_dependency"
    REMOVE_DEPENDENCY = "remove_dependency"
    DELETE = "delete"
    UNDO_POINT = "undo_point"


class FilterMode(StrEnum):
    """查询与活动 context 的组合方式"""

    RESPECT_CONTEXT = "respect_context"
    IGNORE_CONTEXT = "ignore_context"


class ProjectFilterKind(StrEnum):
    """项目过滤方式"""

    EXACT = "exact"
    EQUALS = "equals"
    HIERARCHY = "hierarchy"
    MULTIPLE = "multiple"
    NONE = "none"


class DateFilterKind(StrEnum):
    """日期过滤方式"""

    DUE_BEFORE = "due_before"
    DUE_AFTER = "due_after"
    DUE_BETWEEN = "due_between"
    SCHEDULED_BEFORE = "scheduled_before"
    SCHEDULED_AFTER = "scheduled_after"
    MODIFIED_BEFORE = "modified_before"
    MODIFIED_AFTER = "modified_after"
    ENTRY_BEFORE = "entry_before"
    ENTRY_AFTER = "entry_after"
