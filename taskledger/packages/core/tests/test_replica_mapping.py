"""Operation -> replica 原语映射与字段约定测试"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from taskledger.core.batch import create_from_task
from taskledger.core.exceptions import ReplicaMappingError
from taskledger.core.models import (
    AddAnnotationOp,
    AddDependencyOp,
    AddTagOp,
    Annotation,
    CreateOp,
    DeleteOp,
    Priority,
    RemoveTagOp,
    SetFieldOp,
    Task,
    TaskStatus,
    UndoPointOp,
    UnsetFieldOp,
    UpdateOp,
)
from taskledger.core.replica import (
    CreateTask,
    Replica,
    UndoPoint,
    UpdateTask,
    to_replica_operations,
)
from taskledger.core.replica.fields import (
    fields_to_task,
    format_annotations,
    format_timestamp,
    infer_uda_value,
    json_data_to_fields,
    parse_annotations,
    parse_timestamp,
)


def _commit(replica: Replica, ops) -> None:
    replica.commit_operations(to_replica_operations(replica, ops))


class TestSnapshotBranches:
    """快照 helper 与降级写入两条分支"""

    def test_create_then_tag_uses_fallback_keys(self, replica: Replica):
        """同一批次内刚创建的任务没有快照，走降级键"""
        uuid, dep = uuid4(), uuid4()
        entry = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
        ops = [
            UndoPointOp(),
            CreateOp(uuid=uuid, data={"description": "Buy milk"}),
            AddTagOp(uuid=uuid, tag="errand"),
            AddDependencyOp(uuid=uuid, depends_on=dep),
            AddAnnotationOp(uuid=uuid, entry=entry, description="note"),
        ]

        replica_ops = to_replica_operations(replica, ops)

        assert replica_ops[0] == UndoPoint()
        assert replica_ops[1] == CreateTask(uuid)
        properties = [op.property for op in replica_ops[2:]]
        assert properties == [
            "description",
            "status",
            "entry",
            "tag_errand",
            f"dep_{dep}",
            f"annotation_{int(entry.timestamp())}",
        ]

        replica.commit_operations(replica_ops)
        task = fields_to_task(uuid, replica.get_task_data(uuid))
        assert task.tags == {"errand"}
        assert task.depends == {dep}
        assert [a.description for a in task.annotations] == ["note"]
        assert task.annotations[0].entry == entry

    def test_existing_task_uses_helpers(self, replica: Replica):
        uuid = uuid4()
        _commit(replica, [CreateOp(uuid=uuid, data={"description": "x"})])
        _commit(replica, [AddTagOp(uuid=uuid, tag="old")])
        assert replica.get_task_data(uuid)["tags"] == "old"

        replica_ops = to_replica_operations(
            replica,
            [AddTagOp(uuid=uuid, tag="home"), RemoveTagOp(uuid=uuid, tag="old")],
        )

        assert [op.property for op in replica_ops] == ["tags", "tags"]
        assert [op.value for op in replica_ops] == ["home old", "home"]
        replica.commit_operations(replica_ops)
        assert replica.get_task_data(uuid)["tags"] == "home"

    def test_legacy_keys_folded_on_next_helper_write(self, replica: Replica):
        uuid = uuid4()
        _commit(
            replica,
            [
                CreateOp(uuid=uuid, data={"description": "x"}),
                AddTagOp(uuid=uuid, tag="a"),
            ],
        )
        assert "tag_a" in replica.get_task_data(uuid)

        _commit(replica, [AddTagOp(uuid=uuid, tag="b")])

        data = replica.get_task_data(uuid)
        assert data["tags"] == "a b"
        assert "tag_a" not in data


class TestMappingRules:
    """单个 Operation 的映射规则"""

    def test_empty_create_rejected(self, replica: Replica):
        with pytest.raises(ReplicaMappingError):
            to_replica_operations(replica, [CreateOp(uuid=uuid4(), data={})])

    def test_update_with_complex_value_rejected(self, replica: Replica):
        with pytest.raises(ReplicaMappingError):
            to_replica_operations(
                replica, [UpdateOp(uuid=uuid4(), key="project", new=["a", "b"])]
            )

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("home", "home"), (3, "3"), (1.5, "1.5"), (True, "true"), (None, None)],
    )
    def test_update_value_text(self, replica: Replica, value, expected):
        uuid = uuid4()
        ops = to_replica_operations(replica, [UpdateOp(uuid=uuid, key="k", new=value)])
        assert ops == [UpdateTask(uuid, "k", expected, ops[0].timestamp)]

    def test_set_and_unset_field(self, replica: Replica):
        uuid = uuid4()
        _commit(
            replica,
            [
                CreateOp(uuid=uuid, data={"description": "x"}),
                SetFieldOp(uuid=uuid, key="priority", value="H"),
            ],
        )
        assert replica.get_task_data(uuid)["priority"] == "H"

        _commit(replica, [UnsetFieldOp(uuid=uuid, key="priority")])
        assert "priority" not in replica.get_task_data(uuid)

    def test_delete_is_logical(self, replica: Replica):
        uuid = uuid4()
        _commit(replica, [CreateOp(uuid=uuid, data={"description": "x"})])
        _commit(replica, [UndoPointOp(), DeleteOp(uuid=uuid)])

        data = replica.get_task_data(uuid)
        assert data["status"] == "deleted"
        assert parse_timestamp(data["end"]) is not None


class TestFieldConventions:
    """字段约定"""

    def test_task_round_trip_through_fields(self):
        task = Task(
            description="Write report",
            project="work.docs",
            tags={"next", "office"},
            priority=Priority.HIGH,
            due=datetime(2024, 6, 1, 17, 30, tzinfo=UTC),
            udas={"estimate": 2.0},
        )

        fields = json_data_to_fields(create_from_task(task).data)
        restored = fields_to_task(task.uuid, fields)

        assert fields["tags"] == "next office"
        assert restored.description == task.description
        assert restored.project == task.project
        assert restored.tags == task.tags
        assert restored.priority == Priority.HIGH
        assert restored.due == task.due
        assert restored.entry == task.entry
        assert restored.udas == {"estimate": 2.0}

    def test_uda_type_inference(self):
        task = fields_to_task(
            uuid4(),
            {
                "description": "x",
                "estimate": "2.5",
                "reviewed": "2024-01-02T03:04:05Z",
                "owner": "alice",
                "weird": "nan",
            },
        )
        assert task.udas["estimate"] == 2.5
        assert task.udas["reviewed"] == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert task.udas["owner"] == "alice"
        assert task.udas["weird"] == "nan"

    def test_unparseable_known_fields_fall_back(self):
        task = fields_to_task(uuid4(), {"status": "Bogus", "priority": "X"})
        assert task.status == TaskStatus.PENDING
        assert task.priority is None
        assert task.description == ""

    @pytest.mark.parametrize(
        "text",
        [
            "2024-01-02T03:04:05.000000Z",
            "2024-01-02T03:04:05Z",
            "2024-01-02T05:04:05+02:00",
            "1704164645",
        ],
    )
    def test_parse_timestamp_formats(self, text):
        assert parse_timestamp(text) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_format_naive_as_utc(self):
        assert format_timestamp(datetime(2024, 1, 2)) == "2024-01-02T00:00:00.000000Z"

    def test_infer_uda_value_plain_string(self):
        assert infer_uda_value("hello world") == "hello world"

    def test_annotation_text_is_lossless(self):
        annotations = [
            Annotation(entry=datetime(2024, 1, 1, tzinfo=UTC), description="line1\nline2"),
            Annotation(entry=datetime(2024, 1, 2, tzinfo=UTC), description="C:\\new\\dir"),
            Annotation(entry=datetime(2024, 1, 3, tzinfo=UTC), description="cr\rsep\u2028x"),
            Annotation(entry=datetime(2024, 1, 4, tzinfo=UTC), description=""),
        ]

        text = format_annotations(annotations)

        assert len(text.split("\n")) == len(annotations)
        assert parse_annotations(text) == annotations

    @pytest.mark.parametrize("text", ["1_000", " 42", "42 ", "0x10", "1e", "+"])
    def test_infer_uda_value_keeps_non_decimal_text(self, text):
        assert infer_uda_value(text) == text

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("42", 42.0), ("-1.5e3", -1500.0), (".5", 0.5), ("3.", 3.0)],
    )
    def test_infer_uda_value_numbers(self, text, expected):
        assert infer_uda_value(text) == expected
