"""查询模型

TaskQuery 描述状态/项目/标签/日期过滤、排序与分页。
过滤的执行见 store/filtering.py。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import DateFilterKind, FilterMode, ProjectFilterKind, TaskStatus
from .task import UtcDatetime


class ProjectFilter(BaseModel):
    """项目过滤条件"""

    kind: ProjectFilterKind = Field(description="过滤方式")
    projects: list[str] = Field(default_factory=list, description="候选项目")

    @classmethod
    def exact(cls, project: str) -> "ProjectFilter":
        return cls(kind=ProjectFilterKind.EXACT, projects=[project])

    @classmethod
    def hierarchy(cls, project: str) -> "ProjectFilter":
        return cls(kind=ProjectFilterKind.HIERARCHY, projects=[project])

    @classmethod
    def multiple(cls, projects: list[str]) -> "ProjectFilter":
        return cls(kind=ProjectFilterKind.MULTIPLE, projects=list(projects))

    @classmethod
    def no_project(cls) -> "ProjectFilter":
        return cls(kind=ProjectFilterKind.NONE)

    def matches(self, project: str | None) -> bool:
        """判断任务项目是否满足过滤条件"""
        if self.kind == ProjectFilterKind.NONE:
            return project is None
        if project is None:
            return False
        if self.kind in (ProjectFilterKind.EXACT, ProjectFilterKind.EQUALS):
            return project == self.projects[0]
        if self.kind == ProjectFilterKind.HIERARCHY:
            return project.startswith(self.projects[0])
        return project in self.projects


class TagFilter(BaseModel):
    """标签过滤：include 中任意一个存在，且 exclude 中一个都不存在"""

    include: set[str] = Field(default_factory=set, description="必须包含（任一）")
    exclude: set[str] = Field(default_factory=set, description="必须不包含")

    def matches(self, tags: set[str]) -> bool:
        if self.include and not (self.include & tags):
            return False
        return not (self.exclude & tags)

    def is_empty(self) -> bool:
        return not self.include and not self.exclude


class DateFilter(BaseModel):
    """日期过滤，between 时使用 start/end 闭区间"""

    kind: DateFilterKind = Field(description="过滤方式")
    start: UtcDatetime = Field(description="比较时间（between 时为起点）")
    end: UtcDatetime | None = Field(default=None, description="between 终点")

    def matches(
        self,
        due: datetime | None,
        scheduled: datetime | None,
        modified: datetime | None,
        entry: datetime,
    ) -> bool:
        match self.kind:
            case DateFilterKind.DUE_BEFORE:
                return due is not None and due < self.start
            case DateFilterKind.DUE_AFTER:
                return due is not None and due > self.start
            case DateFilterKind.DUE_BETWEEN:
                return (
                    due is not None
                    and self.end is not None
                    and self.start <= due <= self.end
                )
            case DateFilterKind.SCHEDULED_BEFORE:
                return scheduled is not None and scheduled < self.start
            case DateFilterKind.SCHEDULED_AFTER:
                return scheduled is not None and scheduled > self.start
            case DateFilterKind.MODIFIED_BEFORE:
                return modified is not None and modified < self.start
            case DateFilterKind.MODIFIED_AFTER:
                return modified is not None and modified > self.start
            case DateFilterKind.ENTRY_BEFORE:
                return entry < self.start
            case DateFilterKind.ENTRY_AFTER:
                return entry > self.start
        return False


class SortCriteria(BaseModel):
    """排序条件"""

    field: str = Field(description="排序字段：entry/created/modified/due/priority/project")
    ascending: bool = Field(default=True, description="是否升序")

    @classmethod
    def priority(cls) -> "SortCriteria":
        """优先级排序（默认高优先级在前）"""
        return cls(field="priority", ascending=False)


class TaskQuery(BaseModel):
    """任务查询条件"""

    status: TaskStatus | None = None
    project_filter: ProjectFilter | None = None
    tag_filter: TagFilter | None = None
    date_filter: DateFilter | None = None
    sort: SortCriteria | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    filter_mode: FilterMode = Field(
        default=FilterMode.RESPECT_CONTEXT,
        description="是否与活动 context 组合",
    )
