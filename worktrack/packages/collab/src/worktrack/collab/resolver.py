"""Mentionable-Set Resolver -- 计算某个 actor 在某个任务上可以 @ 的用户集合

- 具备 manage-users 能力或团队 leader：租户内全部有效用户（root 跨租户）
- 其他成员：任务负责人 + 团队服务返回的协作者，永远看不到完整用户目录
- 任意查询失败：降级为只包含自己的集合，不让输入框整体失效

每次请求都重新计算，不做缓存，角色/团队变更立即生效。
"""

import structlog
from worktrack.core.models import (
    Actor,
    Capability,
    MentionableCandidate,
    Role,
    Task,
)
from worktrack.core.permissions import has_capability, is_tenant_visible
from worktrack.core.store.protocols import TeamDirectory

log = structlog.get_logger()


def self_candidate(actor: Actor) -> MentionableCandidate:
    return MentionableCandidate(
        id=actor.id,
        name=actor.name,
        email=actor.email,
        role=actor.role.value,
    )


class MentionableResolver:
    """可提及集合解析器"""

    def __init__(self, directory: TeamDirectory) -> None:
        self._directory = directory

    async def resolve(self, actor: Actor, task: Task) -> list[MentionableCandidate]:
        """解析可提及集合

        Returns:
            按 ID 去重的候选列表（集合语义，保持目录返回顺序）
        """
        try:
            if has_capability(actor.role, Capability.MANAGE_USERS) or actor.is_team_leader:
                candidates = await self._resolve_directory(actor)
            else:
                candidates = await self._resolve_collaborators(actor, task)
        except Exception as e:
            await log.awarning(
                "mentionable_resolution_failed",
                actor_id=actor.id,
                task_id=task.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return [self_candidate(actor)]

        unique = list({c.id: c for c in candidates}.values())
        log.debug(
            "mentionable_resolved",
            actor_id=actor.id,
            task_id=task.id,
            count=len(unique),
        )
        return unique

    async def _resolve_directory(self, actor: Actor) -> list[MentionableCandidate]:
        tenant_filter = None if actor.role == Role.ROOT else actor.tenant_id
        users = await self._directory.list_users()
        return [
            MentionableCandidate(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role.value,
            )
            for user in users
            if user.is_active and is_tenant_visible(actor, user.tenant_id, tenant_filter)
        ]

    async def _resolve_collaborators(
        self,
        actor: Actor,
        task: Task,
    ) -> list[MentionableCandidate]:
        # 只走协作者查询，不触碰 list_users
        return await self._directory.get_task_mentionable_users(
            actor.id,
            task.assignee_id,
            actor.tenant_id,
        )
