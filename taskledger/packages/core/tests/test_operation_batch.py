"""Operation 批次构建测试

测试内容：
1. tags diff 只产生对应的 AddTag / RemoveTag
2. 保存 / 删除批次的形状
3. 其余字段的 diff 规则
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from taskledger.core.batch import (
    build_delete_batch,
    build_save_batch,
    compute_update_ops,
    create_from_task,
)
from taskledger.core.models import (
    AddAnnotationOp,
    AddDependencyOp,
    AddTagOp,
    Annotation,
    CreateOp,
    DeleteOp,
    Priority,
    RemoveDependencyOp,
    RemoveTagOp,
    SetFieldOp,
    Task,
    TaskStatus,
    UndoPointOp,
    UnsetFieldOp,
    UpdateOp,
)


def _task(**kwargs) -> Task:
    kwargs.setdefault("description", "Buy milk")
    kwargs.setdefault("entry", datetime(2024, 5, 1, 9, 0, tzinfo=UTC))
    return Task(**kwargs)


class TestTagDiff:
    """tags diff"""

    def test_only_tag_ops_for_tag_change(self):
        """只有 tags 不同时，diff 只包含 tag 操作"""
        old = _task(tags={"a", "b", "keep"})
        new = old.model_copy(update={"tags": {"b", "c", "d", "keep"}})

        ops = compute_update_ops(old, new)

        assert ops == [
            AddTagOp(uuid=old.uuid, tag="c"),
            AddTagOp(uuid=old.uuid, tag="d"),
            RemoveTagOp(uuid=old.uuid, tag="a"),
        ]

    def test_same_tags_no_ops(self):
        old = _task(tags={"a"})
        assert compute_update_ops(old, old.model_copy(deep=True)) == []


class TestBatchShape:
    """保存 / 删除批次形状"""

    def test_save_new_task(self):
        task = _task(project="home", tags={"errand"})

        ops = build_save_batch(None, task)

        assert len(ops) == 2
        assert ops[0] == UndoPointOp()
        assert isinstance(ops[1], CreateOp)
        assert ops[1].uuid == task.uuid
        assert ops[1].data["description"] == "Buy milk"
        assert ops[1].data["tags"] == ["errand"]
        assert "due" not in ops[1].data

    def test_save_unchanged_task(self):
        task = _task()
        assert build_save_batch(task, task.model_copy(deep=True)) == [UndoPointOp()]

    def test_save_changed_task(self):
        old = _task()
        new = old.model_copy(update={"description": "Buy oat milk"})

        ops = build_save_batch(old, new)

        assert ops == [
            UndoPointOp(),
            UpdateOp(uuid=old.uuid, key="description", old="Buy milk", new="Buy oat milk"),
        ]

    def test_delete_batch(self):
        uuid = uuid4()
        assert build_delete_batch(uuid) == [UndoPointOp(), DeleteOp(uuid=uuid)]


class TestFieldDiff:
    """其余字段 diff"""

    def test_status_uses_lowercase_value(self):
        old = _task()
        new = old.model_copy(update={"status": TaskStatus.COMPLETED})

        ops = compute_update_ops(old, new)

        assert ops == [
            UpdateOp(uuid=old.uuid, key="status", old="pending", new="completed")
        ]

    def test_project_cleared(self):
        old = _task(project="home")
        new = old.model_copy(update={"project": None})

        assert compute_update_ops(old, new) == [
            UpdateOp(uuid=old.uuid, key="project", old="home", new=None)
        ]

    def test_dependencies(self):
        a, b, c = uuid4(), uuid4(), uuid4()
        old = _task(depends={a, b})
        new = old.model_copy(update={"depends": {b, c}})

        ops = compute_update_ops(old, new)

        assert ops == [
            AddDependencyOp(uuid=old.uuid, depends_on=c),
            RemoveDependencyOp(uuid=old.uuid, depends_on=a),
        ]

    def test_annotations_append_only(self):
        """新增注释产生操作，删除注释不产生"""
        first = Annotation(entry=datetime(2024, 5, 1, tzinfo=UTC), description="first")
        second = Annotation(entry=datetime(2024, 5, 2, tzinfo=UTC), description="second")
        old = _task(annotations=[first])

        grown = old.model_copy(update={"annotations": [first, second]})
        assert compute_update_ops(old, grown) == [
            AddAnnotationOp(uuid=old.uuid, entry=second.entry, description="second")
        ]

        shrunk = old.model_copy(update={"annotations": []})
        assert compute_update_ops(old, shrunk) == []

    def test_scalar_fields_and_udas(self):
        due = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        old = _task(due=due, udas={"size": "large"})
        new = old.model_copy(
            update={
                "due": None,
                "priority": Priority.HIGH,
                "udas": {"estimate": 2.5},
            }
        )

        ops = compute_update_ops(old, new)

        assert ops == [
            UnsetFieldOp(uuid=old.uuid, key="due"),
            SetFieldOp(uuid=old.uuid, key="estimate", value="2.5"),
            SetFieldOp(uuid=old.uuid, key="priority", value="H"),
            UnsetFieldOp(uuid=old.uuid, key="size"),
        ]

    def test_changed_timestamp_uses_field_format(self):
        old = _task(due=datetime(2024, 6, 1, tzinfo=UTC))
        new = old.model_copy(update={"due": old.due + timedelta(days=1)})

        ops = compute_update_ops(old, new)

        assert ops == [
            SetFieldOp(uuid=old.uuid, key="due", value="2024-06-02T00:00:00.000000Z")
        ]


class TestCreatePayload:
    """CreateOp payload"""

    def test_payload_is_json_compatible(self):
        dep = uuid4()
        task = _task(depends={dep}, priority=Priority.LOW)

        op = create_from_task(task)

        assert op.data["uuid"] == str(task.uuid)
        assert op.data["depends"] == [str(dep)]
        assert op.data["priority"] == "L"

    def test_serialization_failure_yields_empty_payload(self, monkeypatch):
        """序列化失败时返回空 data，由映射层拒绝"""
        task = _task()

        def _broken_dump(self, **kwargs):
            raise ValueError("boom")

        monkeypatch.setattr(Task, "model_dump", _broken_dump)

        op = create_from_task(task)

        assert op.uuid == task.uuid
        assert op.data == {}
