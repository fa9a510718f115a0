"""packages/core 测试配置 -- 核心层 fixture"""

import pytest_asyncio
from worktrack.core.store import StoreGroup


@pytest_asyncio.fixture
async def doc_store(store_group: StoreGroup):
    """核心层文档存储"""
    return store_group.document_store


@pytest_asyncio.fixture
async def directory(store_group: StoreGroup):
    """核心层团队目录"""
    return store_group.team_directory
