"""集成测试共享 fixture -- 一个租户 T1 + 一个跨租户用户"""

import pytest
import pytest_asyncio
from worktrack.collab import MentionableResolver, NotificationService
from worktrack.core.models import Actor, Role, TeamMember, TeamRole, UserRecord
from worktrack.core.store import StoreGroup


@pytest_asyncio.fixture
async def workspace(store_group: StoreGroup) -> StoreGroup:
    directory = store_group.team_directory
    for user in [
        UserRecord(id="u1", name="Hana", email="hana@acme.io", role=Role.HR, tenant_id="T1"),
        UserRecord(id="u2", name="Alice", email="alice@acme.io", tenant_id="T1", team_id="team-a"),
        UserRecord(
            id="u3",
            name="Bob",
            email="bob@acme.io",
            tenant_id="T1",
            team_id="team-a",
            team_role=TeamRole.LEADER,
        ),
        UserRecord(id="u4", name="Solo", email="solo@acme.io", tenant_id="T1"),
        UserRecord(id="u9", name="Eve", email="eve@globex.io", tenant_id="T2"),
    ]:
        await directory.save_user(user)
    await directory.add_team_member(
        TeamMember(user_id="u2", user_name="Alice", user_email="alice@acme.io", team_id="team-a")
    )
    await directory.add_team_member(
        TeamMember(
            user_id="u3",
            user_name="Bob",
            user_email="bob@acme.io",
            team_id="team-a",
            team_role=TeamRole.LEADER,
        )
    )
    await store_group.document_store.set(
        "tasks/task1",
        {"title": "Ship it", "project_id": "p1", "tenant_id": "T1", "assignee_id": "u2"},
    )
    return store_group


@pytest.fixture
def resolver(workspace: StoreGroup) -> MentionableResolver:
    return MentionableResolver(workspace.team_directory)


@pytest.fixture
def notifier(workspace: StoreGroup) -> NotificationService:
    return NotificationService(workspace.document_store)


@pytest.fixture
def actors() -> dict[str, Actor]:
    return {
        "hana": Actor(id="u1", name="Hana", email="hana@acme.io", role=Role.HR, tenant_id="T1"),
        "alice": Actor(
            id="u2",
            name="Alice",
            email="alice@acme.io",
            tenant_id="T1",
            team_id="team-a",
            team_role=TeamRole.MEMBER,
        ),
        "bob": Actor(
            id="u3",
            name="Bob",
            email="bob@acme.io",
            tenant_id="T1",
            team_id="team-a",
            team_role=TeamRole.LEADER,
        ),
        "solo": Actor(id="u4", name="Solo", email="solo@acme.io", tenant_id="T1"),
    }
