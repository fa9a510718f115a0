"""CLI 入口模块 -- python -m worktrack.core <command>

支持的命令：
  init-db  初始化文档库（建表、启用 WAL）
"""

import asyncio
import sys

import structlog

from .config import get_db_path
from .logging_config import setup_logging

log = structlog.get_logger()


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口"""
    args = sys.argv[1:] if argv is None else argv
    setup_logging()

    if not args:
        print("用法: python -m worktrack.core <command>")
        print("命令:")
        print("  init-db  初始化文档库（建表、启用 WAL）")
        return 1

    command = args[0]
    if command == "init-db":
        return asyncio.run(init_database(get_db_path()))

    print(f"未知命令: {command}")
    print("可用命令: init-db")
    return 1


async def init_database(db_path: str) -> int:
    """创建数据库并校验 WAL 模式"""
    from .store import create_store_group
    from .store.sqlite_init import verify_wal_mode

    store_group = await create_store_group(db_path)
    try:
        wal_enabled = await verify_wal_mode(store_group.conn)
    finally:
        await store_group.close()

    await log.ainfo("database_initialized", db_path=db_path, wal=wal_enabled)
    print(f"数据库路径: {db_path}")
    return 0 if wal_enabled else 1


if __name__ == "__main__":
    sys.exit(main())
