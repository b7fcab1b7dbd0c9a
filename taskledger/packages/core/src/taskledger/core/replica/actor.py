"""ReplicaActor -- 单线程独占 replica 的消息驱动封装

replica 的 sqlite3 连接是线程绑定的，不能在线程间共享。
actor 启动一个专用工作线程持有 Replica，其他线程只通过命令队列访问：

- 每个命令自带一次性的回复队列（maxsize=1）
- 命令严格按入队顺序串行处理
- 单个命令失败只影响该命令的回复，工作线程继续运行
- CloseCommand 或工作线程退出后，句柄进入终态，之后的调用抛出
  ReplicaDisconnectedError
"""

import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID

import structlog

from ..config import DEFAULT_STARTUP_TIMEOUT_S
from ..exceptions import (
    ReplicaDisconnectedError,
    ReplicaOpenError,
    ReplicaTimeoutError,
    StorageError,
    TaskLedgerError,
)
from ..models.operation import Operation
from ..models.task import Task
from .engine import Replica
from .fields import fields_to_task
from .mapping import to_replica_operations
from .wrapper import ReplicaWrapper

log = structlog.get_logger()

# 等待回复时检查工作线程存活的间隔（秒）
_POLL_INTERVAL_S = 0.1

# close() 等待工作线程退出的上限（秒）
_CLOSE_TIMEOUT_S = 5.0


@dataclass(frozen=True, slots=True)
class _Reply:
    """命令结果：value 或 error 二选一"""

    value: Any = None
    error: Exception | None = None


class _CancelToken:
    """调用端超时放弃与工作线程最终提交之间的仲裁

    cancel() 与 claim() 只有先到的一方成功：
    - 调用端先 cancel：工作线程跳过命令，或在 COMMIT 前回滚
    - 工作线程先 claim：结果一定会写入，调用端继续等待回复
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._claimed = False

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> bool:
        with self._lock:
            if self._claimed:
                return False
            self._cancelled = True
            return True

    def claim(self) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._claimed = True
            return True


@dataclass(frozen=True, slots=True)
class CommitCommand:
    ops: tuple[Operation, ...]
    reply: "queue.Queue[_Reply]"
    token: _CancelToken = field(default_factory=_CancelToken)


@dataclass(frozen=True, slots=True)
class OpenCommand:
    path: Path
    reply: "queue.Queue[_Reply]"
    token: _CancelToken = field(default_factory=_CancelToken)


@dataclass(frozen=True, slots=True)
class ReadTaskCommand:
    uuid: UUID
    reply: "queue.Queue[_Reply]"
    token: _CancelToken = field(default_factory=_CancelToken)


@dataclass(frozen=True, slots=True)
class UndoCommand:
    reply: "queue.Queue[_Reply]"
    token: _CancelToken = field(default_factory=_CancelToken)


@dataclass(frozen=True, slots=True)
class CloseCommand:
    reply: "queue.Queue[_Reply]"


RequestCommand = CommitCommand | OpenCommand | ReadTaskCommand | UndoCommand
ReplicaCommand = RequestCommand | CloseCommand

_CANCELLED_MESSAGE = "replica 请求已被调用端放弃"


class _ReplicaWorker:
    """工作线程主体，Replica 只在此线程上创建和使用"""

    def __init__(
        self,
        path: Path,
        commands: "queue.Queue[ReplicaCommand]",
        started: "queue.Queue[_Reply]",
    ) -> None:
        self._path = path
        self._commands = commands
        self._started = started
        self._replica: Replica | None = None

    def run(self) -> None:
        try:
            self._replica = Replica.open(self._path)
        except ReplicaOpenError as e:
            log.warning("replica_actor_start_failed", path=str(self._path), error=str(e))
            self._started.put(_Reply(error=e))
            return

        log.info("replica_actor_started", path=str(self._path))
        self._started.put(_Reply())
        try:
            while True:
                command = self._commands.get()
                if isinstance(command, CloseCommand):
                    command.reply.put(_Reply())
                    return
                command.reply.put(self._dispatch(command))
        finally:
            self._replica.close()
            log.info("replica_actor_stopped", path=str(self._replica.path))

    def _dispatch(self, command: RequestCommand) -> _Reply:
        if command.token.cancelled:
            log.info("replica_command_cancelled", command=type(command).__name__)
            return _Reply(error=ReplicaTimeoutError(_CANCELLED_MESSAGE))
        try:
            return _Reply(value=self._handle(command))
        except TaskLedgerError as e:
            if command.token.cancelled:
                log.info("replica_command_cancelled", command=type(command).__name__)
            elif isinstance(command, CommitCommand):
                log.warning("replica_commit_failed", ops=len(command.ops), error=str(e))
            return _Reply(error=e)
        except Exception as e:
            log.exception("replica_command_failed", command=type(command).__name__)
            return _Reply(error=StorageError(f"replica 内部错误: {e}"))

    def _handle(self, command: RequestCommand) -> Any:
        match command:
            case CommitCommand(ops=ops, token=token):
                replica_ops = to_replica_operations(self._replica, ops)
                self._replica.commit_operations(replica_ops, before_commit=token.claim)
                log.debug(
                    "replica_commit_applied",
                    ops=len(ops),
                    replica_ops=len(replica_ops),
                )
                return None
            case ReadTaskCommand(uuid=uuid):
                data = self._replica.get_task_data(uuid)
                return None if data is None else fields_to_task(uuid, data)
            case UndoCommand(token=token):
                return self._replica.undo(before_commit=token.claim)
            case OpenCommand(path=path, token=token):
                if not token.claim():
                    raise ReplicaTimeoutError(_CANCELLED_MESSAGE)
                self._reopen(path)
                return None
        raise StorageError(f"未知的 replica 命令: {type(command).__name__}")

    def _reopen(self, path: Path) -> None:
        """切换 replica：新 replica 打开成功后才关闭旧的"""
        if path.resolve() == self._replica.path.resolve():
            return
        try:
            new_replica = Replica.open(path)
        except ReplicaOpenError:
            log.warning("replica_open_failed", path=str(path))
            raise
        old, self._replica = self._replica, new_replica
        old.close()
        log.info("replica_reopened", path=str(path), previous=str(old.path))


class ReplicaActorHandle:
    """actor 的调用端句柄，实现 ReplicaWrapper

    可在任意线程并发调用；请求在工作线程上按到达顺序串行执行。
    """

    def __init__(
        self,
        commands: "queue.Queue[ReplicaCommand]",
        worker: threading.Thread,
        request_timeout: float | None = None,
    ) -> None:
        """
        Args:
            commands: 工作线程消费的命令队列
            worker: 工作线程
            request_timeout: 单次请求等待上限（秒），None 表示一直等待
        """
        self._commands = commands
        self._worker = worker
        self._request_timeout = request_timeout
        self._closed = threading.Event()

    def _ensure_connected(self) -> None:
        if self._closed.is_set() or not self._worker.is_alive():
            self._closed.set()
            raise ReplicaDisconnectedError()

    def _request(self, build: Callable[["queue.Queue[_Reply]"], RequestCommand]) -> Any:
        self._ensure_connected()
        reply: "queue.Queue[_Reply]" = queue.Queue(maxsize=1)
        command = build(reply)
        self._commands.put(command)
        result = self._wait(command)
        if result.error is not None:
            raise result.error
        return result.value

    def _wait(self, command: RequestCommand) -> _Reply:
        """等待回复，工作线程退出或超时时抛出

        超时时先取消命令；工作线程已进入提交阶段则继续等待其结果，
        因此抛出 ReplicaTimeoutError 时命令一定没有生效。
        """
        reply = command.reply
        deadline = (
            time.monotonic() + self._request_timeout
            if self._request_timeout is not None
            else None
        )
        while True:
            try:
                return reply.get(timeout=_POLL_INTERVAL_S)
            except queue.Empty:
                pass
            if not self._worker.is_alive():
                try:
                    return reply.get_nowait()
                except queue.Empty:
                    self._closed.set()
                    raise ReplicaDisconnectedError() from None
            if deadline is not None and time.monotonic() >= deadline:
                if command.token.cancel():
                    raise ReplicaTimeoutError(
                        f"replica 请求超时（{self._request_timeout}s）: "
                        f"{type(command).__name__}"
                    )
                deadline = None

    def open(self, path: Path) -> None:
        self._request(lambda reply: OpenCommand(path=Path(path), reply=reply))

    def commit_operations(self, ops: Sequence[Operation]) -> None:
        batch = tuple(ops)
        self._request(lambda reply: CommitCommand(ops=batch, reply=reply))

    def read_task(self, uuid: UUID) -> Task | None:
        return self._request(lambda reply: ReadTaskCommand(uuid=uuid, reply=reply))

    def undo(self) -> bool:
        return self._request(lambda reply: UndoCommand(reply=reply))

    def close(self) -> None:
        """关闭 actor（幂等），等待工作线程退出"""
        if self._closed.is_set():
            return
        self._closed.set()
        if not self._worker.is_alive():
            return
        reply: "queue.Queue[_Reply]" = queue.Queue(maxsize=1)
        self._commands.put(CloseCommand(reply=reply))
        try:
            reply.get(timeout=_CLOSE_TIMEOUT_S)
        except queue.Empty:
            log.warning("replica_actor_close_timeout", timeout=_CLOSE_TIMEOUT_S)
            return
        self._worker.join(timeout=_CLOSE_TIMEOUT_S)

    def __enter__(self) -> "ReplicaActorHandle":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_embedded_replica(
    path: str | Path,
    *,
    startup_timeout: float | None = None,
    request_timeout: float | None = None,
) -> ReplicaWrapper:
    """启动 replica actor 并等待其完成打开

    Args:
        path: replica 目录（不存在时创建）
        startup_timeout: 启动握手超时（秒），默认 DEFAULT_STARTUP_TIMEOUT_S
        request_timeout: 单次请求超时（秒），None 表示一直等待

    Returns:
        ReplicaActorHandle

    Raises:
        ReplicaOpenError: replica 无法打开
        ReplicaTimeoutError: 工作线程未在超时内完成启动
    """
    path = Path(path)
    timeout = startup_timeout if startup_timeout is not None else DEFAULT_STARTUP_TIMEOUT_S
    commands: "queue.Queue[ReplicaCommand]" = queue.Queue()
    started: "queue.Queue[_Reply]" = queue.Queue(maxsize=1)

    worker = _ReplicaWorker(path, commands, started)
    thread = threading.Thread(target=worker.run, name="replica-actor", daemon=True)
    thread.start()

    try:
        result = started.get(timeout=timeout)
    except queue.Empty:
        # 工作线程若稍后完成启动，会立即处理这个关闭命令并退出
        commands.put(CloseCommand(reply=queue.Queue(maxsize=1)))
        log.error("replica_actor_start_failed", path=str(path), timeout=timeout)
        raise ReplicaTimeoutError(f"replica actor 启动超时（{timeout}s）: {path}") from None

    if result.error is not None:
        thread.join(timeout=timeout)
        raise result.error
    return ReplicaActorHandle(commands, thread, request_timeout)
