"""taskledger 异常体系

所有异常携带可读的 message 与 recoverable 标记。
存储层（replica / 文件）与同步层各自有独立的子类分支。
"""

from pathlib import Path
from uuid import UUID


class TaskLedgerError(Exception):
    """taskledger 基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ConfigurationError(TaskLedgerError):
    """配置错误（例如写路径未注入 ReplicaWrapper）

    属于装配层面的问题，调用方不应重试。
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class TaskNotFoundError(TaskLedgerError):
    """任务不存在（仅用于必须存在的写操作，读取返回 None 而非抛出）"""

    def __init__(self, uuid: UUID) -> None:
        super().__init__(f"任务不存在: {uuid}", recoverable=False)
        self.uuid = uuid


class StorageError(TaskLedgerError):
    """存储/数据库错误基类"""


class ReplicaOpenError(StorageError):
    """replica 无法打开或创建"""

    def __init__(self, path: str | Path, original_error: Exception) -> None:
        """
        Args:
            path: 尝试打开的 replica 目录
            original_error: 原始异常
        """
        super().__init__(f"无法打开 replica: {path} -- {original_error}")
        self.path = Path(path)
        self.original_error = original_error


class ReplicaMappingError(StorageError):
    """Operation 无法转换为 replica 原语操作，整个批次被拒绝"""


class ReplicaCommitError(StorageError):
    """replica 事务提交失败（已回滚）"""


class ReplicaTimeoutError(StorageError):
    """replica actor 启动握手或请求等待超时"""


class ReplicaDisconnectedError(StorageError):
    """replica actor 的工作线程已退出

    对该 actor 实例而言是终态：之后的每次调用都会抛出此异常。
    """

    def __init__(self, message: str = "replica actor 已断开") -> None:
        super().__init__(message, recoverable=False)


class SerializationError(StorageError):
    """JSON 序列化/反序列化失败"""


class UnsupportedOperationError(StorageError):
    """当前后端不支持的操作（例如 replica 后端的 backup/restore）"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class SyncError(TaskLedgerError):
    """同步辅助流程错误基类"""


class ExternalToolMissingError(SyncError):
    """外部工具不存在或无法启动"""

    def __init__(self, name: str) -> None:
        super().__init__(f"外部工具缺失: {name}", recoverable=False)
        self.name = name


class ExternalToolFailedError(SyncError):
    """外部工具以非零退出码结束"""

    def __init__(self, name: str, exit_code: int | None, stderr: str) -> None:
        super().__init__(f"外部工具执行失败: {name} (exit: {exit_code}) stderr: {stderr}")
        self.name = name
        self.exit_code = exit_code
        self.stderr = stderr


class ReplicaReloadFailedError(SyncError):
    """同步后重新打开 replica 失败"""

    def __init__(self, path: str | Path, message: str) -> None:
        super().__init__(f"replica 重新加载失败 {path}: {message}")
        self.path = Path(path)
