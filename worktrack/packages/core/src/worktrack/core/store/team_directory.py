"""TeamDirectory 的 DocumentStore 实现

数据布局：
- users/{user_id}                        -> UserRecord
- teams/{team_id}/members/{user_id}      -> TeamMember
"""

import structlog

from ..models.actor import MentionableCandidate, TeamMember, UserRecord
from ..models.enums import TeamRole
from .protocols import DocumentStore

log = structlog.get_logger()


class StoreTeamDirectory:
    """基于 DocumentStore 的团队成员 / 用户目录"""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def save_user(self, user: UserRecord) -> None:
        await self._store.set(f"users/{user.id}", user)

    async def add_team_member(self, member: TeamMember) -> None:
        await self._store.set(
            f"teams/{member.team_id}/members/{member.user_id}",
            member,
        )

    async def get_user(self, user_id: str) -> UserRecord | None:
        data = await self._store.get(f"users/{user_id}")
        return UserRecord.model_validate(data) if data else None

    async def list_users(self) -> list[UserRecord]:
        data = await self._store.get("users") or {}
        return [UserRecord.model_validate(item) for item in data.values()]

    async def get_team_members(self, team_id: str | None) -> list[TeamMember]:
        """查询团队有效成员，leader 排在前面

        没有团队的调用方（team_id 为空）返回空列表，不报错。
        """
        if not team_id:
            return []
        data = await self._store.get(f"teams/{team_id}/members") or {}
        members = [
            member
            for member in (TeamMember.model_validate(item) for item in data.values())
            if member.is_active and member.team_id == team_id
        ]
        # sorted 是稳定排序：leader 在前，其余保持加入顺序
        return sorted(members, key=lambda m: m.team_role != TeamRole.LEADER)

    async def get_task_mentionable_users(
        self,
        actor_id: str,
        assignee_id: str | None,
        tenant_id: str | None,
    ) -> list[MentionableCandidate]:
        """普通成员在任务上的协作者：任务负责人 + 自己团队的其他成员"""
        candidates: dict[str, MentionableCandidate] = {}

        if assignee_id:
            assignee = await self.get_user(assignee_id)
            if assignee and assignee.is_active and assignee.tenant_id == tenant_id:
                candidates[assignee.id] = MentionableCandidate(
                    id=assignee.id,
                    name=assignee.name,
                    email=assignee.email,
                    role=assignee.role.value,
                )

        actor = await self.get_user(actor_id)
        team_id = actor.team_id if actor else None
        for member in await self.get_team_members(team_id):
            if member.user_id == actor_id or member.user_id in candidates:
                continue
            candidates[member.user_id] = MentionableCandidate(
                id=member.user_id,
                name=member.user_name,
                email=member.user_email,
                role=member.team_role.value,
            )

        log.debug(
            "task_mentionable_users_loaded",
            actor_id=actor_id,
            assignee_id=assignee_id,
            count=len(candidates),
        )
        return list(candidates.values())
