"""Domain Models 单元测试

测试内容：
1. 枚举取值
2. Task helper 行为
3. Operation 批次 JSON 序列化往返
4. 查询模型与 context 解析
"""

from datetime import UTC, datetime, timedelta, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError
from taskledger.core.models import (
    AddAnnotationOp,
    AddDependencyOp,
    AddTagOp,
    Annotation,
    CreateOp,
    DateFilter,
    DateFilterKind,
    DeleteOp,
    OperationType,
    Priority,
    ProjectFilter,
    RemoveDependencyOp,
    RemoveTagOp,
    SetFieldOp,
    TagFilter,
    Task,
    TaskQuery,
    TaskStatus,
    UndoPointOp,
    UnsetFieldOp,
    UpdateOp,
    UserContext,
    dump_operations,
    load_operations,
    parse_project_from_filter,
)


class TestEnums:
    """枚举取值测试"""

    def test_task_status_values(self):
        """TaskStatus 序列化为小写"""
        assert TaskStatus.PENDING == "pending"
        assert TaskStatus.DELETED == "deleted"
        assert TaskStatus("completed") == TaskStatus.COMPLETED

    def test_priority_values(self):
        """Priority 序列化为单字母"""
        assert Priority.HIGH == "H"
        assert Priority("L") == Priority.LOW

    def test_operation_type_covers_all_variants(self):
        assert len(OperationType) == 11


class TestTask:
    """Task helper 测试"""

    def test_defaults(self):
        task = Task(description="Buy milk")
        assert task.status == TaskStatus.PENDING
        assert task.tags == set()
        assert task.entry.tzinfo is not None

    def test_complete(self):
        task = Task(description="x")
        task.start_work()
        task.complete()
        assert task.status == TaskStatus.COMPLETED
        assert task.end is not None
        assert task.modified is not None
        assert not task.is_active()

    def test_mark_deleted(self):
        task = Task(description="x")
        task.mark_deleted()
        assert task.status == TaskStatus.DELETED
        assert task.end is not None

    def test_tags(self):
        task = Task(description="x")
        task.add_tag("home")
        assert task.has_tag("home")
        assert task.remove_tag("home") is True
        assert task.remove_tag("home") is False

    def test_remove_annotation(self):
        task = Task(description="x")
        task.add_annotation(Annotation(description="a"))
        task.add_annotation(Annotation(description="b"))
        assert task.remove_annotation("a") is True
        assert [a.description for a in task.annotations] == ["b"]
        assert task.remove_annotation("zzz") is False

    def test_is_overdue(self):
        past = datetime.now(UTC) - timedelta(days=1)
        assert Task(description="x", due=past).is_overdue()
        assert not Task(description="x", due=past, status=TaskStatus.COMPLETED).is_overdue()
        assert not Task(description="x").is_overdue()

    def test_datetimes_normalized_to_utc(self):
        """naive 时间视为 UTC，带时区的时间转换到 UTC（含赋值）"""
        shanghai = timezone(timedelta(hours=8))
        task = Task(
            description="x",
            due=datetime(2024, 1, 1, 12),
            scheduled=datetime(2024, 1, 1, 20, tzinfo=shanghai),
            annotations=[Annotation(entry=datetime(2024, 1, 1), description="a")],
            udas={"reviewed": datetime(2024, 1, 1)},
        )

        assert task.due == datetime(2024, 1, 1, 12, tzinfo=UTC)
        assert task.due.tzinfo is UTC
        assert task.scheduled.tzinfo is UTC
        assert task.scheduled == datetime(2024, 1, 1, 12, tzinfo=UTC)
        assert task.annotations[0].entry.tzinfo is UTC
        assert task.udas["reviewed"].tzinfo is UTC

        task.wait = datetime(2024, 2, 1)
        assert task.wait.tzinfo is UTC
        assert task.wait > task.due


class TestOperationSerialization:
    """Operation 批次序列化测试"""

    def test_all_variants_survive_json(self):
        """所有变体序列化后还原为相等的值"""
        uuid, other = uuid4(), uuid4()
        batch = [
            UndoPointOp(),
            CreateOp(uuid=uuid, data={"description": "Buy milk", "tags": ["errand"]}),
            UpdateOp(uuid=uuid, key="description", old="Buy milk", new="Buy oat milk"),
            UpdateOp(uuid=uuid, key="project", old="home", new=None),
            SetFieldOp(uuid=uuid, key="priority", value="H"),
            UnsetFieldOp(uuid=uuid, key="due"),
            AddTagOp(uuid=uuid, tag="errand"),
            RemoveTagOp(uuid=uuid, tag="errand"),
            AddAnnotationOp(
                uuid=uuid,
                entry=datetime(2024, 5, 1, 10, 0, tzinfo=UTC),
                description="call first",
            ),
            AddDependencyOp(uuid=uuid, depends_on=other),
            RemoveDependencyOp(uuid=uuid, depends_on=other),
            DeleteOp(uuid=uuid),
        ]
        assert {op.type for op in batch} == set(OperationType)

        restored = load_operations(dump_operations(batch))

        assert restored == batch
        assert [type(op) for op in restored] == [type(op) for op in batch]

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            load_operations('[{"type": "rename", "uuid": "%s"}]' % uuid4())

    def test_operations_are_frozen(self):
        op = AddTagOp(uuid=uuid4(), tag="a")
        with pytest.raises(ValidationError):
            op.tag = "b"


class TestQueryModels:
    """查询模型测试"""

    def test_project_filter(self):
        assert ProjectFilter.exact("work").matches("work")
        assert not ProjectFilter.exact("work").matches("work.api")
        assert ProjectFilter.hierarchy("work").matches("work.api")
        assert ProjectFilter.multiple(["a", "b"]).matches("b")
        assert ProjectFilter.no_project().matches(None)
        assert not ProjectFilter.exact("work").matches(None)

    def test_tag_filter(self):
        f = TagFilter(include={"a", "b"}, exclude={"x"})
        assert f.matches({"a"})
        assert not f.matches({"c"})
        assert not f.matches({"a", "x"})
        assert TagFilter().is_empty()
        assert TagFilter().matches(set())

    def test_date_filter(self):
        now = datetime.now(UTC)
        before = DateFilter(kind=DateFilterKind.DUE_BEFORE, start=now)
        assert before.matches(now - timedelta(hours=1), None, None, now)
        assert not before.matches(None, None, None, now)

        between = DateFilter(
            kind=DateFilterKind.DUE_BETWEEN,
            start=now - timedelta(days=1),
            end=now + timedelta(days=1),
        )
        assert between.matches(now, None, None, now)
        assert not between.matches(now + timedelta(days=2), None, None, now)

    def test_naive_filter_and_annotation_op_are_utc(self):
        naive = DateFilter(kind=DateFilterKind.DUE_BEFORE, start=datetime(2025, 1, 1))
        assert naive.start.tzinfo is UTC
        assert naive.matches(datetime(2024, 6, 1, tzinfo=UTC), None, None, datetime.now(UTC))

        op = AddAnnotationOp(uuid=uuid4(), entry=datetime(2024, 1, 1), description="a")
        assert op.entry == datetime(2024, 1, 1, tzinfo=UTC)

    def test_negative_offset_rejected(self):
        with pytest.raises(ValidationError):
            TaskQuery(offset=-1)


class TestContext:
    """context 项目约束解析测试"""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("project:work", "work"),
            ("project=home", "home"),
            ("project==side", "side"),
            ('+next project:"quoted"', "quoted"),
            ("+next -waiting", None),
        ],
    )
    def test_parse_project_from_filter(self, expression, expected):
        assert parse_project_from_filter(expression) == expected

    def test_user_context_project(self):
        ctx = UserContext(name="work", read_filter="project:work +next", active=True)
        assert ctx.project() == "work"
