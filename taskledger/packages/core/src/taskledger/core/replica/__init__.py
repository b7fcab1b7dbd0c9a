"""嵌入式 replica：引擎、Operation 映射与单线程 actor"""

from .actor import ReplicaActorHandle, open_embedded_replica
from .engine import (
    CreateTask,
    DeleteTask,
    Replica,
    ReplicaOperation,
    ReplicaTask,
    UndoPoint,
    UpdateTask,
)
from .mapping import to_replica_operations
from .wrapper import ReplicaWrapper

__all__ = [
    "CreateTask",
    "DeleteTask",
    "Replica",
    "ReplicaActorHandle",
    "ReplicaOperation",
    "ReplicaTask",
    "ReplicaWrapper",
    "UndoPoint",
    "UpdateTask",
    "open_embedded_replica",
    "to_replica_operations",
]
