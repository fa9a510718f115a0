"""worktrack Core Store -- 文档存储与订阅

提供工厂函数创建共享数据库连接与变更广播器的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .document_store import SqliteDocumentStore, normalize_path, split_path
from .hub import ChangeHub, Subscription
from .protocols import DocumentStore, TeamDirectory
from .sqlite_init import init_db
from .team_directory import StoreTeamDirectory


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接和同一个 ChangeHub"""

    def __init__(self, conn: aiosqlite.Connection, hub: ChangeHub | None = None) -> None:
        self.conn = conn
        self.hub = hub or ChangeHub()
        self.document_store = SqliteDocumentStore(conn, self.hub)
        self.team_directory = StoreTeamDirectory(self.document_store)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "ChangeHub",
    "Subscription",
    "DocumentStore",
    "TeamDirectory",
    "SqliteDocumentStore",
    "StoreTeamDirectory",
    "init_db",
    "split_path",
    "normalize_path",
]
