"""structlog 配置模块

库代码只通过 structlog.get_logger() 输出结构化事件，不在 import 时配置日志；
由 CLI 入口调用 setup_logging()。日志写 stderr，stdout 留给 CLI 输出。
"""

import logging
import os
import sys
from typing import Literal

import structlog

LogFormat = Literal["dev", "json"]

# 第三方库 logger 的默认级别，避免 DEBUG 时刷屏
_QUIET_LOGGERS: dict[str, int] = {
    "aiosqlite": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    log_format: LogFormat | None = None,
    log_level: str | None = None,
) -> None:
    """初始化 structlog 与标准库 logging

    Args:
        log_format: "dev" 可读输出 / "json" 每行一个 JSON 事件，
            默认读取 TASKLEDGER_LOG_FORMAT
        log_level: 日志级别名，默认读取 TASKLEDGER_LOG_LEVEL（INFO）
    """
    log_format = log_format or os.environ.get("TASKLEDGER_LOG_FORMAT", "dev")
    level = _resolve_level(log_level or os.environ.get("TASKLEDGER_LOG_LEVEL", "INFO"))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))
