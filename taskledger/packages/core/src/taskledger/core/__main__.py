"""CLI 入口模块 -- python -m taskledger.core <command>

支持的命令：
  add <描述...>   新建任务
  list            列出 pending 任务
  done <uuid>     完成任务
  delete <uuid>   删除任务（逻辑删除）
  undo            撤销最近一次修改（仅 replica 后端）
  sync            执行 task sync 并重新加载 replica（仅 replica 后端）
"""

import asyncio
import sys
from uuid import UUID

from .config import load_storage_config
from .exceptions import TaskLedgerError
from .logging_config import setup_logging
from .models.enums import TaskStatus
from .models.query import SortCriteria, TaskQuery
from .models.task import Task

_USAGE = """用法: python -m taskledger.core <command>
命令:
  add <描述...>   新建任务
  list            列出 pending 任务
  done <uuid>     完成任务
  delete <uuid>   删除任务
  undo            撤销最近一次修改
  sync            执行 task sync 并重新加载 replica"""


def main() -> None:
    """CLI 主入口"""
    setup_logging()

    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]
    if command not in _COMMANDS:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)

    try:
        asyncio.run(_COMMANDS[command](args))
    except TaskLedgerError as e:
        print(f"错误: {e}")
        sys.exit(1)


def _parse_uuid(args: list[str]) -> UUID:
    if not args:
        print("缺少任务 uuid")
        sys.exit(1)
    try:
        return UUID(args[0])
    except ValueError:
        print(f"无效的 uuid: {args[0]}")
        sys.exit(1)


async def cmd_add(args: list[str]) -> None:
    from .store import create_storage_backend

    if not args:
        print("缺少任务描述")
        sys.exit(1)
    backend = await create_storage_backend()
    try:
        task = Task(description=" ".join(args))
        await backend.save_task(task)
        print(f"已创建任务 {task.uuid}")
    finally:
        backend.close()


async def cmd_list(args: list[str]) -> None:
    from .store import create_storage_backend

    backend = await create_storage_backend()
    try:
        query = TaskQuery(status=TaskStatus.PENDING, sort=SortCriteria.priority())
        tasks = await backend.query_tasks(query)
    finally:
        backend.close()

    for task in tasks:
        project = f" [{task.project}]" if task.project else ""
        tags = f" +{' +'.join(sorted(task.tags))}" if task.tags else ""
        print(f"{task.uuid}  {task.description}{project}{tags}")
    print(f"共 {len(tasks)} 个任务")


async def cmd_done(args: list[str]) -> None:
    from .store import create_storage_backend

    uuid = _parse_uuid(args)
    backend = await create_storage_backend()
    try:
        task = await backend.load_task(uuid)
        if task is None:
            print(f"任务不存在: {uuid}")
            sys.exit(1)
        task.complete()
        await backend.save_task(task)
        print(f"已完成任务 {uuid}")
    finally:
        backend.close()


async def cmd_delete(args: list[str]) -> None:
    from .store import create_storage_backend

    uuid = _parse_uuid(args)
    backend = await create_storage_backend()
    try:
        await backend.delete_task(uuid)
        print(f"已删除任务 {uuid}")
    finally:
        backend.close()


async def cmd_undo(args: list[str]) -> None:
    from .replica.actor import open_embedded_replica

    config = load_storage_config()
    replica = await asyncio.to_thread(
        open_embedded_replica,
        config.replica_dir,
        startup_timeout=config.startup_timeout_s,
        request_timeout=config.request_timeout,
    )
    try:
        undone = await asyncio.to_thread(replica.undo)
    finally:
        replica.close()
    print("已撤销最近一次修改" if undone else "没有可撤销的修改")


async def cmd_sync(args: list[str]) -> None:
    from .replica.actor import open_embedded_replica
    from .sync import SubprocessRunner, run_task_sync_and_reload_replica

    config = load_storage_config()
    replica = await asyncio.to_thread(
        open_embedded_replica,
        config.replica_dir,
        startup_timeout=config.startup_timeout_s,
        request_timeout=config.request_timeout,
    )
    try:
        await asyncio.to_thread(
            run_task_sync_and_reload_replica,
            SubprocessRunner(),
            replica,
            config.replica_dir,
        )
    finally:
        replica.close()
    print("同步完成")


_COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "done": cmd_done,
    "delete": cmd_delete,
    "undo": cmd_undo,
    "sync": cmd_sync,
}


if __name__ == "__main__":
    main()
