"""ReplicaWrapper 接口定义

存储后端通过此接口访问 replica 写路径，
具体实现可以是 ReplicaActorHandle，也可以是测试用的内存实现。
所有方法都是阻塞调用，且可从任意线程并发调用。
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol
from uuid import UUID

from ..models.operation import Operation
from ..models.task import Task


class ReplicaWrapper(Protocol):
    """replica 写路径接口"""

    def open(self, path: Path) -> None:
        """切换到 path 处的 replica；失败时保持原 replica 不变"""
        ...

    def commit_operations(self, ops: Sequence[Operation]) -> None:
        """原子提交一个 Operation 批次"""
        ...

    def read_task(self, uuid: UUID) -> Task | None:
        """读取单个任务，不存在时返回 None"""
        ...

    def undo(self) -> bool:
        """撤销最近一个可撤销单元，返回是否有操作被撤销"""
        ...

    def close(self) -> None:
        """关闭 replica，之后的调用均失败"""
        ...
