"""Task Domain Model

Task 以 UUID 为身份标识，只通过 Operation 序列（replica 后端）
或整体替换（文件后端）进行变更。
"""

from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from .enums import Priority, TaskStatus


def utcnow() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """naive 时间视为 UTC，带时区的时间转换到 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# 模型中的时间一律为 UTC aware
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]

# 用户自定义属性值：字符串 / 数值 / 时间
UdaValue = str | float | UtcDatetime


class Annotation(BaseModel):
    """任务注释（带时间戳，按插入顺序排列，可重复）"""

    model_config = ConfigDict(validate_assignment=True)

    entry: UtcDatetime = Field(default_factory=utcnow, description="注释时间")
    description: str = Field(description="注释内容")


class Task(BaseModel):
    """Task 数据模型"""

    model_config = ConfigDict(validate_assignment=True)

    uuid: UUID = Field(default_factory=uuid4, description="唯一标识")
    description: str = Field(description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    entry: UtcDatetime = Field(default_factory=utcnow, description="创建时间")
    modified: UtcDatetime | None = Field(default=None, description="最后修改时间")
    due: UtcDatetime | None = Field(default=None, description="截止时间")
    scheduled: UtcDatetime | None = Field(default=None, description="计划开始时间")
    wait: UtcDatetime | None = Field(default=None, description="等待至该时间后可见")
    end: UtcDatetime | None = Field(default=None, description="完成/删除时间")
    start: UtcDatetime | None = Field(default=None, description="开始计时时间")
    priority: Priority | None = Field(default=None, description="优先级")
    project: str | None = Field(default=None, description="所属项目")
    tags: set[str] = Field(default_factory=set, description="标签集合")
    annotations: list[Annotation] = Field(default_factory=list, description="注释列表")
    depends: set[UUID] = Field(default_factory=set, description="依赖的任务 UUID")
    urgency: float = Field(default=0.0, description="紧急度（计算值，不持久化）")
    udas: dict[str, UdaValue] = Field(default_factory=dict, description="用户自定义属性")
    recur: str | None = Field(default=None, description="重复规则")
    parent: UUID | None = Field(default=None, description="重复任务的模板任务")
    mask: str | None = Field(default=None, description="重复任务模板的 mask")
    active: bool = Field(default=False, description="是否正在进行")

    def complete(self) -> None:
        """标记为已完成"""
        now = utcnow()
        self.status = TaskStatus.COMPLETED
        self.end = now
        self.modified = now
        self.active = False
        self.start = None

    def mark_deleted(self) -> None:
        """标记为已删除（逻辑删除）"""
        now = utcnow()
        self.status = TaskStatus.DELETED
        self.end = now
        self.modified = now
        self.active = False
        self.start = None

    def start_work(self) -> None:
        """开始计时"""
        now = utcnow()
        self.active = True
        self.start = now
        self.modified = now

    def stop_work(self) -> None:
        """停止计时"""
        self.active = False
        self.start = None
        self.modified = utcnow()

    def add_tag(self, tag: str) -> None:
        self.tags.add(tag)
        self.modified = utcnow()

    def remove_tag(self, tag: str) -> bool:
        """移除标签，返回是否确实移除"""
        if tag not in self.tags:
            return False
        self.tags.discard(tag)
        self.modified = utcnow()
        return True

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def add_annotation(self, annotation: Annotation) -> None:
        self.annotations.append(annotation)
        self.modified = utcnow()

    def remove_annotation(self, description: str) -> bool:
        """按内容移除注释，返回是否有注释被移除"""
        kept = [a for a in self.annotations if a.description != description]
        removed = len(kept) < len(self.annotations)
        if removed:
            self.annotations = kept
            self.modified = utcnow()
        return removed

    def is_overdue(self) -> bool:
        """pending 且已过截止时间"""
        return (
            self.status == TaskStatus.PENDING
            and self.due is not None
            and self.due < utcnow()
        )

    def is_active(self) -> bool:
        return self.active and self.start is not None
