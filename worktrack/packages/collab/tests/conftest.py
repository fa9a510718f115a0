"""packages/collab 测试配置 -- 租户/团队种子数据、可注入失败的 store"""

from collections.abc import Iterable

import pytest
import pytest_asyncio
import structlog
from worktrack.collab import MentionableResolver, NotificationService
from worktrack.core.models import Actor, Role, TeamMember, TeamRole, UserRecord
from worktrack.core.store import StoreGroup, StoreTeamDirectory
from worktrack.core.store.document_store import SqliteDocumentStore, normalize_path

USERS = [
    UserRecord(id="u-alice", name="Alice", email="alice@acme.io", tenant_id="T1", team_id="team-a"),
    UserRecord(
        id="u-bob",
        name="Bob",
        email="bob@acme.io",
        tenant_id="T1",
        team_id="team-a",
        team_role=TeamRole.LEADER,
    ),
    UserRecord(id="u-carol", name="Carol", email="carol@acme.io", tenant_id="T1", team_id="team-a"),
    UserRecord(id="u-dave", name="Dave", email="dave@acme.io", tenant_id="T1"),
    UserRecord(id="u-hana", name="Hana", email="hana@acme.io", tenant_id="T1", role=Role.HR),
    UserRecord(id="u-gone", name="Gus", email="gus@acme.io", tenant_id="T1", is_active=False),
    UserRecord(id="u-eve", name="Eve", email="eve@globex.io", tenant_id="T2"),
    UserRecord(id="u-legacy", name="Lee", email="lee@old.io"),
]

TEAM_A = [
    TeamMember(user_id="u-alice", user_name="Alice", user_email="alice@acme.io", team_id="team-a"),
    TeamMember(
        user_id="u-bob",
        user_name="Bob",
        user_email="bob@acme.io",
        team_id="team-a",
        team_role=TeamRole.LEADER,
    ),
    TeamMember(user_id="u-carol", user_name="Carol", user_email="carol@acme.io", team_id="team-a"),
]


class FlakyDocumentStore(SqliteDocumentStore):
    """写入匹配前缀的路径时抛出异常，用于验证回滚与失败隔离"""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_prefixes: set[str] = set()
        self.write_count = 0

    def _check(self, paths: Iterable[str]) -> None:
        for path in paths:
            if any(path.startswith(prefix) for prefix in self.fail_prefixes):
                raise RuntimeError(f"injected write failure: {path}")

    async def set(self, path, value):
        self._check([normalize_path(path)])
        self.write_count += 1
        await super().set(path, value)

    async def update(self, path, partial):
        base = normalize_path(path)
        self._check([f"{base}/{normalize_path(key)}" for key in partial])
        self.write_count += 1
        await super().update(path, partial)


@pytest_asyncio.fixture
async def flaky_store(store_group: StoreGroup) -> FlakyDocumentStore:
    return FlakyDocumentStore(store_group.conn, store_group.hub)


@pytest_asyncio.fixture
async def seeded_directory(flaky_store: FlakyDocumentStore) -> StoreTeamDirectory:
    """T1: team-a（Bob 为 leader）+ 无团队的 Dave + HR Hana；T2: Eve；无租户: Lee"""
    directory = StoreTeamDirectory(flaky_store)
    for user in USERS:
        await directory.save_user(user)
    for member in TEAM_A:
        await directory.add_team_member(member)
    return directory


@pytest.fixture
def resolver(seeded_directory: StoreTeamDirectory) -> MentionableResolver:
    return MentionableResolver(seeded_directory)


@pytest.fixture
def notifier(flaky_store: FlakyDocumentStore) -> NotificationService:
    return NotificationService(flaky_store)


@pytest.fixture
def alice() -> Actor:
    return Actor(
        id="u-alice",
        name="Alice",
        email="alice@acme.io",
        tenant_id="T1",
        team_id="team-a",
        team_role=TeamRole.MEMBER,
    )


@pytest.fixture
def bob() -> Actor:
    return Actor(
        id="u-bob",
        name="Bob",
        email="bob@acme.io",
        tenant_id="T1",
        team_id="team-a",
        team_role=TeamRole.LEADER,
    )


@pytest.fixture
def dave() -> Actor:
    return Actor(id="u-dave", name="Dave", email="dave@acme.io", tenant_id="T1")


@pytest.fixture
def hana() -> Actor:
    return Actor(id="u-hana", name="Hana", email="hana@acme.io", role=Role.HR, tenant_id="T1")


@pytest.fixture
def root_actor() -> Actor:
    return Actor(id="u-root", name="Root", role=Role.ROOT)


@pytest.fixture
def captured_logs():
    """捕获 structlog 事件（合并 contextvars），用于断言日志上下文"""
    capture = structlog.testing.LogCapture()
    structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])
    yield capture.entries
    structlog.reset_defaults()
