"""测试替身"""

from collections.abc import Sequence
from pathlib import Path
from uuid import UUID

from taskledger.core.exceptions import TaskLedgerError
from taskledger.core.models import Operation, Task


class InMemoryReplicaWrapper:
    """记录提交批次的内存 ReplicaWrapper

    read_task 返回预置的任务；commit 不修改 tasks，只记录批次。
    """

    def __init__(self, tasks: Sequence[Task] = ()) -> None:
        self.tasks: dict[UUID, Task] = {t.uuid: t for t in tasks}
        self.last_operations: list[Operation] = []
        self.committed: list[list[Operation]] = []
        self.opened: list[Path] = []
        self.closed = False
        self.commit_error: TaskLedgerError | None = None
        self.read_error: TaskLedgerError | None = None
        self.open_error: TaskLedgerError | None = None

    def open(self, path: Path) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened.append(Path(path))

    def commit_operations(self, ops: Sequence[Operation]) -> None:
        self.last_operations = list(ops)
        if self.commit_error is not None:
            raise self.commit_error
        self.committed.append(list(ops))

    def read_task(self, uuid: UUID) -> Task | None:
        if self.read_error is not None:
            raise self.read_error
        return self.tasks.get(uuid)

    def undo(self) -> bool:
        if not self.committed:
            return False
        self.committed.pop()
        return True

    def close(self) -> None:
        self.closed = True
