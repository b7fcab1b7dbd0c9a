"""JSON 文件存储后端

目录布局：
- <dir>/tasks.json               全部任务的 JSON 数组
- <dir>/backups/tasks_<ts>.json  每次覆盖写之前的备份

写入先落到 tasks.tmp，再 os.replace 原子替换。
内存缓存由 threading.Lock 保护。
"""

import os
import shutil
import threading
import time
from pathlib import Path
from uuid import UUID

import structlog
from pydantic import TypeAdapter, ValidationError

from ..config import TASKS_FILENAME
from ..exceptions import SerializationError, StorageError, TaskNotFoundError
from ..models.context import UserContext
from ..models.query import TaskQuery
from ..models.task import Task
from .filtering import apply_query

log = structlog.get_logger()

_task_list_adapter: TypeAdapter[list[Task]] = TypeAdapter(list[Task])


class JsonFileStorageBackend:
    """StorageBackend 的 JSON 文件实现"""

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir)
        self._tasks_file = self._data_dir / TASKS_FILENAME
        self._backup_dir = self._data_dir / "backups"
        self._lock = threading.Lock()
        self._cache: dict[UUID, Task] = {}
        self._initialized = False

    @property
    def tasks_file(self) -> Path:
        return self._tasks_file

    def _read_file(self) -> dict[UUID, Task]:
        if not self._tasks_file.exists():
            return {}
        try:
            tasks = _task_list_adapter.validate_json(self._tasks_file.read_bytes())
        except ValidationError as e:
            raise SerializationError(f"任务文件解析失败 {self._tasks_file}: {e}") from e
        except OSError as e:
            raise StorageError(f"任务文件读取失败 {self._tasks_file}: {e}") from e
        return {task.uuid: task for task in tasks}

    def _create_backup(self) -> None:
        if not self._tasks_file.exists():
            return
        self._backup_dir.mkdir(parents=True, exist_ok=True)
        backup_file = self._backup_dir / f"tasks_{int(time.time())}.json"
        shutil.copyfile(self._tasks_file, backup_file)

    def _write_file(self, tasks: dict[UUID, Task]) -> None:
        """备份后原子覆盖 tasks.json（调用方持有锁，成功后才替换缓存）"""
        try:
            self._create_backup()
            payload = _task_list_adapter.dump_json(list(tasks.values()), indent=2)
            tmp_file = self._tasks_file.with_suffix(".tmp")
            tmp_file.write_bytes(payload)
            os.replace(tmp_file, self._tasks_file)
        except OSError as e:
            raise StorageError(f"任务文件写入失败 {self._tasks_file}: {e}") from e

    def close(self) -> None:
        """丢弃内存缓存，之后的读取直接访问文件"""
        with self._lock:
            self._cache = {}
            self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"无法创建数据目录 {self._data_dir}: {e}") from e
        tasks = self._read_file()
        with self._lock:
            self._cache = tasks
        self._initialized = True

    async def save_task(self, task: Task) -> None:
        await self.initialize()
        with self._lock:
            tasks = dict(self._cache)
            tasks[task.uuid] = task.model_copy(deep=True)
            self._write_file(tasks)
            self._cache = tasks

    async def load_task(self, uuid: UUID) -> Task | None:
        if not self._initialized:
            return self._read_file().get(uuid)
        with self._lock:
            task = self._cache.get(uuid)
            return task.model_copy(deep=True) if task else None

    async def delete_task(self, uuid: UUID) -> None:
        await self.initialize()
        with self._lock:
            if uuid not in self._cache:
                raise TaskNotFoundError(uuid)
            tasks = {k: v for k, v in self._cache.items() if k != uuid}
            self._write_file(tasks)
            self._cache = tasks

    async def load_all_tasks(self) -> list[Task]:
        if not self._initialized:
            return list(self._read_file().values())
        with self._lock:
            return [task.model_copy(deep=True) for task in self._cache.values()]

    async def query_tasks(
        self,
        query: TaskQuery,
        active_context: UserContext | None = None,
    ) -> list[Task]:
        return apply_query(await self.load_all_tasks(), query, active_context)

    async def backup(self) -> str:
        if not self._tasks_file.exists():
            return ""
        try:
            return self._tasks_file.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"任务文件读取失败 {self._tasks_file}: {e}") from e

    async def restore(self, data: str) -> None:
        """以备份数据覆盖任务文件并重新加载缓存"""
        if not data:
            return
        try:
            tasks = _task_list_adapter.validate_json(data)
        except ValidationError as e:
            raise SerializationError(f"备份数据无效: {e}") from e

        with self._lock:
            try:
                self._create_backup()
            except OSError as e:
                log.warning("file_backend_backup_failed", path=str(self._tasks_file), error=str(e))
            try:
                self._data_dir.mkdir(parents=True, exist_ok=True)
                self._tasks_file.write_text(data, encoding="utf-8")
            except OSError as e:
                raise StorageError(f"任务文件写入失败 {self._tasks_file}: {e}") from e
            self._cache = {task.uuid: task for task in tasks}
            self._initialized = True
