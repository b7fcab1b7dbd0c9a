"""同步辅助 -- 调用外部 `task sync` 后重新加载 replica

同步协议本身由外部工具完成，这里只负责：
1. 通过 ProcessRunner 执行 `task sync`
2. 成功后让 replica actor 重新打开 replica 目录
"""

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from .exceptions import (
    ExternalToolFailedError,
    ExternalToolMissingError,
    ReplicaReloadFailedError,
    TaskLedgerError,
)
from .replica.wrapper import ReplicaWrapper

log = structlog.get_logger()

SYNC_PROGRAM = "task"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """外部进程执行结果"""

    exit_code: int
    stdout: str
    stderr: str


class ProcessRunner(Protocol):
    """外部进程执行接口，测试中可替换为 fake"""

    def run(
        self, program: str, args: Sequence[str], timeout: float | None = None
    ) -> ProcessResult:
        """执行进程并返回结果

        Raises:
            OSError: 程序不存在或无法启动
            subprocess.TimeoutExpired: 超时
        """
        ...


class SubprocessRunner:
    """基于 subprocess.run 的默认实现"""

    def run(
        self, program: str, args: Sequence[str], timeout: float | None = None
    ) -> ProcessResult:
        completed = subprocess.run(
            [program, *args],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
        return ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def run_task_sync_and_reload_replica(
    runner: ProcessRunner,
    replica: ReplicaWrapper,
    replica_path: str | Path,
    timeout: float | None = None,
) -> None:
    """执行 `task sync` 并重新加载 replica

    Args:
        runner: 外部进程执行器
        replica: 需要重新加载的 replica actor
        replica_path: replica 目录
        timeout: `task sync` 超时（秒）

    Raises:
        ExternalToolMissingError: task 程序不存在
        ExternalToolFailedError: task sync 退出码非零或超时
        ReplicaReloadFailedError: replica 重新打开失败
    """
    try:
        result = runner.run(SYNC_PROGRAM, ["sync"], timeout)
    except OSError as e:
        raise ExternalToolMissingError(SYNC_PROGRAM) from e
    except subprocess.TimeoutExpired as e:
        raise ExternalToolFailedError(SYNC_PROGRAM, None, f"超时（{timeout}s）") from e

    if result.exit_code != 0:
        raise ExternalToolFailedError(SYNC_PROGRAM, result.exit_code, result.stderr)

    try:
        replica.open(Path(replica_path))
    except TaskLedgerError as e:
        raise ReplicaReloadFailedError(replica_path, e.message) from e

    log.info("sync_completed", replica_path=str(replica_path))
