"""Actor / 用户目录模型

Actor 是已认证的当前身份，会话内不可变；
UserRecord / TeamMember 是目录侧的记录，MentionableCandidate 每次请求时派生。
"""

from pydantic import BaseModel, ConfigDict, Field

from .enums import Role, TeamRole


class Actor(BaseModel):
    """当前操作者身份（由会话层提供，本模块只消费）"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="用户 ID")
    name: str = Field(default="", description="显示名称")
    email: str = Field(default="", description="邮箱")
    role: Role = Field(default=Role.EMPLOYEE, description="角色")
    tenant_id: str | None = Field(default=None, description="所属租户（公司）")
    team_id: str | None = Field(default=None, description="所属团队")
    team_role: TeamRole | None = Field(default=None, description="团队内角色")

    @property
    def is_team_leader(self) -> bool:
        return self.team_role == TeamRole.LEADER


class UserRecord(BaseModel):
    """用户目录记录"""

    id: str = Field(description="用户 ID")
    name: str = Field(description="显示名称")
    email: str = Field(default="", description="邮箱")
    role: Role = Field(default=Role.EMPLOYEE, description="角色")
    tenant_id: str | None = Field(default=None, description="所属租户")
    team_id: str | None = Field(default=None, description="所属团队")
    team_role: TeamRole | None = Field(default=None, description="团队内角色")
    is_active: bool = Field(default=True, description="是否在职")


class TeamMember(BaseModel):
    """团队成员记录"""

    user_id: str = Field(description="用户 ID")
    user_name: str = Field(default="", description="显示名称")
    user_email: str = Field(default="", description="邮箱")
    team_id: str = Field(description="团队 ID")
    team_role: TeamRole = Field(default=TeamRole.MEMBER, description="团队内角色")
    is_active: bool = Field(default=True, description="是否有效成员")


class MentionableCandidate(BaseModel):
    """可被 @ 的候选用户（派生数据，不落盘）"""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str = ""
    role: str = ""
