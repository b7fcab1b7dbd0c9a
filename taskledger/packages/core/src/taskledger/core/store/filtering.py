"""查询执行 -- 在内存中对任务列表应用 TaskQuery

两个存储后端共用：先过滤，再排序，最后分页。
"""

from collections.abc import Iterable
from datetime import datetime

from ..models.context import UserContext
from ..models.enums import PRIORITY_RANK, FilterMode
from ..models.query import SortCriteria, TaskQuery
from ..models.task import Task


def _matches(task: Task, query: TaskQuery, context_project: str | None) -> bool:
    if query.status is not None and task.status != query.status:
        return False
    if query.project_filter is not None and not query.project_filter.matches(task.project):
        return False
    if query.tag_filter is not None and not query.tag_filter.matches(task.tags):
        return False
    if query.date_filter is not None and not query.date_filter.matches(
        task.due, task.scheduled, task.modified, task.entry
    ):
        return False
    if context_project is not None and task.project != context_project:
        return False
    return True


def _sort(tasks: list[Task], sort: SortCriteria) -> None:
    """原地排序；缺失值（due / priority / project）始终排在最后"""
    field = sort.field
    reverse = not sort.ascending

    if field in ("entry", "created"):
        tasks.sort(key=lambda t: t.entry, reverse=reverse)
        return
    if field == "modified":
        tasks.sort(key=lambda t: t.modified or t.entry, reverse=reverse)
        return

    def present_key(task: Task) -> datetime | int | str | None:
        if field == "due":
            return task.due
        if field == "priority":
            return PRIORITY_RANK[task.priority] if task.priority else None
        if field == "project":
            return task.project
        return None

    present = [t for t in tasks if present_key(t) is not None]
    missing = [t for t in tasks if present_key(t) is None]
    present.sort(key=present_key, reverse=reverse)
    tasks[:] = present + missing


def apply_query(
    tasks: Iterable[Task],
    query: TaskQuery,
    active_context: UserContext | None = None,
) -> list[Task]:
    """按 TaskQuery 过滤、排序、分页

    Args:
        tasks: 候选任务
        query: 查询条件
        active_context: 当前活动 context；filter_mode 为 respect_context 时
            其 read_filter 中的项目约束与查询条件取交集
    """
    context_project = None
    if active_context is not None and query.filter_mode == FilterMode.RESPECT_CONTEXT:
        context_project = active_context.project()

    result = [t for t in tasks if _matches(t, query, context_project)]

    if query.sort is not None:
        _sort(result, query.sort)

    if query.offset:
        result = result[query.offset:]
    if query.limit is not None:
        result = result[: query.limit]
    return result
