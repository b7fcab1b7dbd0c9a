"""Store Protocol 接口定义

StorageBackend 是持久化能力的抽象接口，有两个实现：
JsonFileStorageBackend（单个 JSON 文件）与 ReplicaStorageBackend（嵌入式 replica）。
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol
from uuid import UUID

from ..models.context import UserContext
from ..models.query import TaskQuery
from ..models.task import Task


class StorageBackend(Protocol):
    """任务存储接口"""

    async def initialize(self) -> None:
        """初始化存储（创建目录 / 校验数据库），可重复调用"""
        ...

    async def save_task(self, task: Task) -> None:
        """保存任务（不存在则创建，存在则更新）"""
        ...

    async def load_task(self, uuid: UUID) -> Task | None:
        """读取单个任务，不存在时返回 None"""
        ...

    async def delete_task(self, uuid: UUID) -> None:
        """删除任务"""
        ...

    async def load_all_tasks(self) -> list[Task]:
        """读取全部任务"""
        ...

    async def query_tasks(
        self,
        query: TaskQuery,
        active_context: UserContext | None = None,
    ) -> list[Task]:
        """按查询条件过滤、排序、分页"""
        ...

    async def backup(self) -> str:
        """导出当前数据"""
        ...

    async def restore(self, data: str) -> None:
        """以 backup() 的输出覆盖当前数据"""
        ...

    def close(self) -> None:
        """释放后端持有的资源"""
        ...
