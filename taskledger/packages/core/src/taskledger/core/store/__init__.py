"""taskledger Core Store -- 任务持久化实现

提供工厂函数按配置创建存储后端。
"""

import asyncio

from ..config import StorageConfig, load_storage_config
from ..replica.actor import open_embedded_replica
from .file_backend import JsonFileStorageBackend
from .filtering import apply_query
from .protocols import StorageBackend
from .replica_backend import ReplicaStorageBackend


async def create_storage_backend(
    config: StorageConfig | None = None,
) -> StorageBackend:
    """按配置创建并初始化存储后端

    replica 后端会启动 replica actor 并注入为写路径；
    调用方负责在结束时调用 close()。

    Args:
        config: 存储配置，默认从环境变量加载

    Returns:
        已初始化的存储后端
    """
    config = config or load_storage_config()

    if config.backend == "file":
        file_backend = JsonFileStorageBackend(config.json_dir)
        await file_backend.initialize()
        return file_backend

    replica = await asyncio.to_thread(
        open_embedded_replica,
        config.replica_dir,
        startup_timeout=config.startup_timeout_s,
        request_timeout=config.request_timeout,
    )
    backend = ReplicaStorageBackend(str(config.replica_dir), replica)
    try:
        await backend.initialize()
    except Exception:
        backend.close()
        raise
    return backend


__all__ = [
    "StorageBackend",
    "JsonFileStorageBackend",
    "ReplicaStorageBackend",
    "apply_query",
    "create_storage_backend",
]
