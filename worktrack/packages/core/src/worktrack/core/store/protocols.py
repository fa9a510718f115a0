"""Store Protocol 接口定义

定义 DocumentStore（文档读写/订阅原语）与 TeamDirectory（团队/用户目录）的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing），测试中可替换为假实现。
"""

from typing import Any, Protocol

from ..models.actor import MentionableCandidate, TeamMember, UserRecord
from .hub import Subscription


class DocumentStore(Protocol):
    """文档存储接口

    路径为 '/' 分隔的不透明标识，按实体 ID 划分（例如 tasks/{task_id}/notes）。
    """

    async def get(self, path: str) -> Any:
        """读取路径上的快照，不存在时返回 None"""
        ...

    async def set(self, path: str, value: Any) -> None:
        """整体写入路径；value 为 None 时删除"""
        ...

    async def push(self, path: str) -> str:
        """为路径下的新子节点分配 ID（时间有序）"""
        ...

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        """局部更新；partial 的键可以是 'a/b' 形式的相对路径"""
        ...

    async def subscribe(self, path: str) -> Subscription:
        """订阅路径，先投递当前快照，之后每次变更投递一次新快照"""
        ...


class TeamDirectory(Protocol):
    """团队成员 / 用户目录接口"""

    async def get_team_members(self, team_id: str | None) -> list[TeamMember]:
        """查询团队有效成员；team_id 为空时返回空列表"""
        ...

    async def get_task_mentionable_users(
        self,
        actor_id: str,
        assignee_id: str | None,
        tenant_id: str | None,
    ) -> list[MentionableCandidate]:
        """查询普通成员在某任务上可提及的协作者"""
        ...

    async def list_users(self) -> list[UserRecord]:
        """列出全部用户（仅供有目录权限的调用方使用）"""
        ...
