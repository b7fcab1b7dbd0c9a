"""replica 字段约定

replica 中每个任务是一个 字符串 -> 字符串 的字段表。本模块定义
Task 与字段表之间的双向转换：

- 时间字段使用固定文本格式 DATETIME_FORMAT（UTC）
- tags / depends 以空格拼接，annotations 以换行拼接 "<时间> <内容>"（内容中的换行转义）
- 快照不可用时的降级写入键：tag_<name> / dep_<uuid> / annotation_<unix_ts>
- 其余未识别的键视为 UDA，类型按 数值 -> 时间 -> 字符串 的顺序推断
"""

import math
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from ..exceptions import ReplicaMappingError
from ..models.enums import Priority, TaskStatus
from ..models.task import Annotation, Task, UdaValue, utcnow

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_DATETIME_FORMATS = (DATETIME_FORMAT, "%Y-%m-%dT%H:%M:%SZ")

# 严格的十进制数值文本（不接受下划线、首尾空白、inf/nan）
_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

TAG_PREFIX = "tag_"
DEP_PREFIX = "dep_"
ANNOTATION_PREFIX = "annotation_"

TIMESTAMP_KEYS = ("entry", "modified", "due", "scheduled", "wait", "end", "start")

# 除 description/project/status/tags/depends/annotations 之外需要逐字段同步的键
SCALAR_KEYS = (
    "priority",
    "due",
    "scheduled",
    "wait",
    "end",
    "start",
    "modified",
    "recur",
    "parent",
    "mask",
    "active",
)

KNOWN_KEYS = frozenset(
    {
        "uuid",
        "description",
        "status",
        "priority",
        "project",
        "tags",
        "depends",
        "annotations",
        "recur",
        "parent",
        "mask",
        "active",
        "urgency",
        *TIMESTAMP_KEYS,
    }
)


def format_timestamp(value: datetime) -> str:
    """datetime -> 固定格式文本（naive 时间按 UTC 处理）"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(DATETIME_FORMAT)


def parse_timestamp(text: str) -> datetime | None:
    """解析时间文本

    依次尝试固定格式、unix 秒、ISO-8601，均失败时返回 None。
    """
    text = text.strip()
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=UTC)
        except ValueError:
            pass
    if text.isdigit():
        return datetime.fromtimestamp(int(text), UTC)
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def join_words(values: Iterable[Any]) -> str:
    """集合 -> 排序后空格拼接"""
    return " ".join(sorted(str(v) for v in values))


# 注释内容中的换行与反斜杠按转义写入，保证往返无损
_ANNOTATION_ESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


def _escape_annotation(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r")


def _unescape_annotation(text: str) -> str:
    if "\\" not in text:
        return text
    chars = iter(text)
    out = []
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ANNOTATION_ESCAPES.get(nxt, ch + nxt))
        else:
            out.append(ch)
    return "".join(out)


def format_annotations(annotations: Iterable[Annotation]) -> str:
    return "\n".join(
        f"{format_timestamp(ann.entry)} {_escape_annotation(ann.description)}"
        for ann in annotations
    )


def parse_annotations(text: str) -> list[Annotation]:
    """解析换行分隔的 "<时间> <内容>"，时间无法解析的行被跳过"""
    annotations = []
    for line in text.split("\n"):
        stamp, _, description = line.partition(" ")
        entry = parse_timestamp(stamp) if stamp else None
        if entry is None:
            continue
        annotations.append(
            Annotation(entry=entry, description=_unescape_annotation(description))
        )
    return annotations


def format_uda(value: UdaValue) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)


def infer_uda_value(text: str) -> UdaValue:
    """按 数值 -> 时间 -> 字符串 的顺序推断 UDA 类型"""
    if _NUMBER_RE.fullmatch(text):
        number = float(text)
        if math.isfinite(number):
            return number
    if text == text.strip() and (stamp := parse_timestamp(text)) is not None:
        return stamp
    return text


def json_value_to_text(key: str, value: Any) -> str | None:
    """JSON 值 -> 字段文本，None 表示清除字段

    Raises:
        ReplicaMappingError: 值为列表/对象等无法表示为单个字段的结构
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    raise ReplicaMappingError(
        f"字段 {key} 的值无法映射为 replica 字段: {type(value).__name__}"
    )


def scalar_fields(task: Task) -> dict[str, str]:
    """逐字段同步的标量字段与 UDA"""
    fields: dict[str, str] = {}
    if task.priority is not None:
        fields["priority"] = task.priority.value
    for key in ("due", "scheduled", "wait", "end", "start", "modified"):
        if (value := getattr(task, key)) is not None:
            fields[key] = format_timestamp(value)
    if task.recur is not None:
        fields["recur"] = task.recur
    if task.parent is not None:
        fields["parent"] = str(task.parent)
    if task.mask is not None:
        fields["mask"] = task.mask
    if task.active:
        fields["active"] = "true"
    for key, value in task.udas.items():
        if key in KNOWN_KEYS:
            continue
        fields[key] = format_uda(value)
    return fields


def task_to_fields(task: Task) -> dict[str, str]:
    """Task -> 完整字段表"""
    fields = {
        "description": task.description,
        "status": task.status.value,
        "entry": format_timestamp(task.entry),
    }
    if task.project is not None:
        fields["project"] = task.project
    if task.tags:
        fields["tags"] = join_words(task.tags)
    if task.depends:
        fields["depends"] = join_words(task.depends)
    if task.annotations:
        fields["annotations"] = format_annotations(task.annotations)
    fields.update(scalar_fields(task))
    return fields


def json_data_to_fields(data: Mapping[str, Any]) -> dict[str, str]:
    """Create 操作的结构化 payload -> 字段表

    payload 通常是 Task.model_dump(mode="json")，但也接受任意的键值表。
    """
    fields: dict[str, str] = {}
    for key, value in data.items():
        if key in ("uuid", "urgency") or value is None:
            continue
        if key == "udas" and isinstance(value, Mapping):
            for uda_key, uda_value in value.items():
                text = json_value_to_text(uda_key, uda_value)
                if text is not None and uda_key not in KNOWN_KEYS:
                    fields[uda_key] = text
        elif key in ("tags", "depends") and isinstance(value, list):
            if value:
                fields[key] = join_words(value)
        elif key == "annotations" and isinstance(value, list):
            try:
                annotations = [Annotation.model_validate(item) for item in value]
            except ValueError as e:
                raise ReplicaMappingError(f"annotations 格式错误: {e}") from e
            if annotations:
                fields[key] = format_annotations(annotations)
        elif key in TIMESTAMP_KEYS and isinstance(value, str):
            stamp = parse_timestamp(value)
            fields[key] = format_timestamp(stamp) if stamp is not None else value
        elif key == "active":
            if value:
                fields[key] = "true"
        else:
            text = json_value_to_text(key, value)
            if text is not None:
                fields[key] = text
    return fields


def _parse_uuid(text: str) -> UUID | None:
    try:
        return UUID(text)
    except ValueError:
        return None


def fields_to_task(uuid: UUID, data: Mapping[str, str]) -> Task:
    """字段表 -> Task

    降级键会合并到 tags / depends / annotations，
    其余未识别的键作为 UDA 推断类型。
    """
    tags = set(data.get("tags", "").split())
    depends = {
        dep for token in data.get("depends", "").split() if (dep := _parse_uuid(token))
    }
    annotations = parse_annotations(data.get("annotations", ""))
    udas: dict[str, UdaValue] = {}

    for key, value in data.items():
        if key in KNOWN_KEYS:
            continue
        if key.startswith(TAG_PREFIX) and len(key) > len(TAG_PREFIX):
            tags.add(key.removeprefix(TAG_PREFIX))
        elif key.startswith(DEP_PREFIX) and (dep := _parse_uuid(key.removeprefix(DEP_PREFIX))):
            depends.add(dep)
        elif key.startswith(ANNOTATION_PREFIX) and key.removeprefix(ANNOTATION_PREFIX).isdigit():
            entry = datetime.fromtimestamp(int(key.removeprefix(ANNOTATION_PREFIX)), UTC)
            annotations.append(Annotation(entry=entry, description=value))
        else:
            udas[key] = infer_uda_value(value)

    annotations.sort(key=lambda a: a.entry)

    try:
        status = TaskStatus(data.get("status", TaskStatus.PENDING))
    except ValueError:
        status = TaskStatus.PENDING
    try:
        priority = Priority(data["priority"]) if "priority" in data else None
    except ValueError:
        priority = None

    stamps = {
        key: parse_timestamp(data[key]) for key in TIMESTAMP_KEYS if key in data
    }

    return Task(
        uuid=uuid,
        description=data.get("description", ""),
        status=status,
        entry=stamps.get("entry") or utcnow(),
        modified=stamps.get("modified"),
        due=stamps.get("due"),
        scheduled=stamps.get("scheduled"),
        wait=stamps.get("wait"),
        end=stamps.get("end"),
        start=stamps.get("start"),
        priority=priority,
        project=data.get("project"),
        tags=tags,
        annotations=annotations,
        depends=depends,
        udas=udas,
        recur=data.get("recur"),
        parent=_parse_uuid(data["parent"]) if "parent" in data else None,
        mask=data.get("mask"),
        active=data.get("active", "").lower() in ("true", "1", "yes"),
    )
