"""角色 / 租户模型 -- 纯函数，无副作用

权限表在进程内只加载一次，使用 MappingProxyType + frozenset 暴露只读视图；
模块导入时校验每张表覆盖全部 Role，缺项直接在启动时报错。
can_manage 使用显式表，不用角色等级相减推导。
"""

from collections.abc import Mapping
from types import MappingProxyType

from .models.actor import Actor
from .models.enums import Capability, Role

_ALL_CAPABILITIES = frozenset(Capability)

ROLE_CAPABILITIES: Mapping[Role, frozenset[Capability]] = MappingProxyType(
    {
        Role.EMPLOYEE: frozenset(),
        Role.HR: frozenset(
            {
                Capability.MANAGE_USERS,
                Capability.VIEW_ALL_TIME_ENTRIES,
                Capability.ADMIN_DASHBOARD,
                Capability.CREATE_USERS,
                Capability.VIEW_USER_DETAILS,
                Capability.VIEW_HOURLY_RATES,
                Capability.EDIT_HOURLY_RATES,
            }
        ),
        # admin 不可查看/编辑时薪，也不可修改系统设置
        Role.ADMIN: _ALL_CAPABILITIES
        - {
            Capability.MANAGE_SYSTEM_SETTINGS,
            Capability.VIEW_HOURLY_RATES,
            Capability.EDIT_HOURLY_RATES,
        },
        Role.SUPER_ADMIN: _ALL_CAPABILITIES,
        Role.ROOT: _ALL_CAPABILITIES,
    }
)

ROLE_RANK: Mapping[Role, int] = MappingProxyType(
    {
        Role.EMPLOYEE: 0,
        Role.HR: 1,
        Role.ADMIN: 2,
        Role.SUPER_ADMIN: 3,
        Role.ROOT: 4,
    }
)

MANAGEABLE_ROLES: Mapping[Role, frozenset[Role]] = MappingProxyType(
    {
        Role.EMPLOYEE: frozenset(),
        Role.HR: frozenset({Role.EMPLOYEE}),
        Role.ADMIN: frozenset({Role.EMPLOYEE, Role.HR}),
        Role.SUPER_ADMIN: frozenset(Role) - {Role.ROOT},
        Role.ROOT: frozenset(Role),
    }
)

# 可删除任意实体的角色
UNRESTRICTED_DELETE_ROLES: frozenset[Role] = frozenset(
    {Role.ADMIN, Role.SUPER_ADMIN, Role.ROOT}
)

_ROLE_DISPLAY: Mapping[Role, tuple[str, str]] = MappingProxyType(
    {
        Role.EMPLOYEE: ("Employee", "Basic time tracking and project access"),
        Role.HR: ("HR", "Manage employees and view user details"),
        Role.ADMIN: (
            "Admin",
            "Full system access including user management and projects",
        ),
        Role.SUPER_ADMIN: ("Super Admin", "Complete company access and all permissions"),
        Role.ROOT: ("Root", "Platform owner with ultimate system control"),
    }
)


def _check_exhaustive() -> None:
    """启动时校验：每张角色表必须覆盖全部 Role"""
    tables: dict[str, Mapping[Role, object]] = {
        "ROLE_CAPABILITIES": ROLE_CAPABILITIES,
        "ROLE_RANK": ROLE_RANK,
        "MANAGEABLE_ROLES": MANAGEABLE_ROLES,
        "_ROLE_DISPLAY": _ROLE_DISPLAY,
    }
    for name, table in tables.items():
        missing = set(Role) - set(table)
        if missing:
            raise RuntimeError(
                f"{name} 缺少角色定义: {sorted(r.value for r in missing)}"
            )
    ranks = sorted(ROLE_RANK.values())
    if ranks != list(range(len(Role))):
        raise RuntimeError("ROLE_RANK 必须是从 0 开始的连续全序")


_check_exhaustive()


def has_capability(role: Role, capability: Capability) -> bool:
    """角色是否具备指定能力"""
    return capability in ROLE_CAPABILITIES[Role(role)]


def role_rank(role: Role) -> int:
    """角色等级：employee < hr < admin < super_admin < root"""
    return ROLE_RANK[Role(role)]


def role_hierarchy() -> list[Role]:
    """按等级从低到高返回全部角色"""
    return sorted(Role, key=role_rank)


def can_manage(actor_role: Role, target_role: Role) -> bool:
    """actor_role 是否可以管理 target_role 的用户

    同级角色之间（例如 admin 管理 admin）默认拒绝，super_admin / root 除外。
    """
    return Role(target_role) in MANAGEABLE_ROLES[Role(actor_role)]


def can_delete_entity(actor_role: Role, creator_id: str | None, actor_id: str) -> bool:
    """是否可以删除实体：admin 及以上可删任意实体，其余只能删自己创建的"""
    if Role(actor_role) in UNRESTRICTED_DELETE_ROLES:
        return True
    return creator_id is not None and creator_id == actor_id


def is_tenant_visible(
    actor: Actor,
    entity_tenant_id: str | None,
    tenant_filter: str | None = None,
) -> bool:
    """租户隔离谓词

    Args:
        actor: 当前操作者
        entity_tenant_id: 实体所属租户，None 表示历史遗留的全局实体
        tenant_filter: 查询时显式指定的租户过滤条件

    Returns:
        - 有租户的实体：仅同租户可见，root 跨租户可见；
          指定了 tenant_filter 时还必须与过滤条件一致
        - 无租户的实体：仅在未指定 tenant_filter 时可见
    """
    if entity_tenant_id is None:
        return tenant_filter is None
    if tenant_filter is not None and entity_tenant_id != tenant_filter:
        return False
    if actor.role == Role.ROOT:
        return True
    return actor.tenant_id == entity_tenant_id


def role_display_name(role: Role) -> str:
    return _ROLE_DISPLAY[Role(role)][0]


def role_description(role: Role) -> str:
    return _ROLE_DISPLAY[Role(role)][1]
