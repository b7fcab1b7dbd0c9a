"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import Iterator
from pathlib import Path

import pytest
from taskledger.core.replica import Replica, ReplicaWrapper, open_embedded_replica


@pytest.fixture
def replica_dir(tmp_path: Path) -> Path:
    """临时 replica 目录（尚未创建）"""
    return tmp_path / "replica"


@pytest.fixture
def replica(replica_dir: Path) -> Iterator[Replica]:
    """当前线程上直接打开的 replica 引擎"""
    rep = Replica.open(replica_dir)
    yield rep
    rep.close()


@pytest.fixture
def actor(replica_dir: Path) -> Iterator[ReplicaWrapper]:
    """replica actor，测试结束时关闭"""
    handle = open_embedded_replica(replica_dir, startup_timeout=5.0, request_timeout=10.0)
    yield handle
    handle.close()
