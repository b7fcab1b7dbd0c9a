"""配置模块 -- 可通过环境变量覆盖

包含数据目录、replica 路径、存储后端选择以及 actor 超时等配置。
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError

log = structlog.get_logger()

# replica 目录内的数据库文件名
REPLICA_DB_FILENAME: str = "taskchampion.sqlite3"

# JSON 文件后端的任务文件名
TASKS_FILENAME: str = "tasks.json"

# actor 启动握手默认超时（秒）
DEFAULT_STARTUP_TIMEOUT_S: float = 5.0

# actor 单次请求默认超时（秒），0 表示不限
DEFAULT_REQUEST_TIMEOUT_S: float = 30.0


def _get_base_dir() -> Path:
    """获取 data 基础目录"""
    return Path(os.environ.get("TASKLEDGER_DATA_DIR", "data"))


def get_replica_dir() -> Path:
    """获取 replica 目录"""
    return Path(
        os.environ.get(
            "TASKLEDGER_REPLICA_DIR",
            str(_get_base_dir() / "replica"),
        )
    )


def get_json_dir() -> Path:
    """获取 JSON 文件后端目录"""
    return Path(
        os.environ.get(
            "TASKLEDGER_JSON_DIR",
            str(_get_base_dir() / "json"),
        )
    )


def replica_db_file(replica_dir: str | Path) -> Path:
    """replica 目录对应的 SQLite 数据库文件路径"""
    return Path(replica_dir) / REPLICA_DB_FILENAME


class StorageConfig(BaseModel):
    """存储配置 -- 从环境变量加载

    环境变量:
        TASKLEDGER_STORAGE_BACKEND: 存储后端（replica/file）
        TASKLEDGER_REPLICA_DIR: replica 目录
        TASKLEDGER_JSON_DIR: JSON 文件后端目录
        TASKLEDGER_REPLICA_STARTUP_TIMEOUT_S: actor 启动握手超时（秒）
        TASKLEDGER_REPLICA_REQUEST_TIMEOUT_S: actor 请求超时（秒，0 表示不限）
    """

    backend: Literal["replica", "file"] = Field(
        default="replica",
        description="存储后端：replica / file",
    )
    replica_dir: Path = Field(
        default_factory=get_replica_dir,
        description="replica 目录",
    )
    json_dir: Path = Field(
        default_factory=get_json_dir,
        description="JSON 文件后端目录",
    )
    startup_timeout_s: float = Field(
        default=DEFAULT_STARTUP_TIMEOUT_S,
        gt=0,
        description="actor 启动握手超时（秒）",
    )
    request_timeout_s: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_S,
        ge=0,
        description="actor 请求超时（秒），0 表示一直等待",
    )

    @property
    def request_timeout(self) -> float | None:
        """actor 使用的请求超时，0 转换为 None"""
        return self.request_timeout_s or None


def _float_env(env_var: str, fallback: float) -> float | None:
    """读取浮点型环境变量，非法值记录告警并返回 None"""
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return float(val)
    except ValueError:
        log.warning(
            "invalid_config_value",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        return None


def load_storage_config() -> StorageConfig:
    """从环境变量加载存储配置

    Returns:
        StorageConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TASKLEDGER_STORAGE_BACKEND"):
        kwargs["backend"] = val

    if (timeout := _float_env(
        "TASKLEDGER_REPLICA_STARTUP_TIMEOUT_S", DEFAULT_STARTUP_TIMEOUT_S
    )) is not None:
        kwargs["startup_timeout_s"] = timeout

    if (timeout := _float_env(
        "TASKLEDGER_REPLICA_REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT_S
    )) is not None:
        kwargs["request_timeout_s"] = timeout

    try:
        return StorageConfig(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"存储配置无效: {e}") from e
