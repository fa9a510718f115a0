"""枚举定义 -- 角色、权限能力、团队角色、提及上下文

Role / Capability 是封闭集合，权限表在 permissions 模块中按枚举穷举校验。
"""

from enum import StrEnum


class Role(StrEnum):
    """用户角色（按权限从低到高排列）"""

    EMPLOYEE = "employee"
    HR = "hr"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    ROOT = "root"


class Capability(StrEnum):
    """角色能力"""

    MANAGE_PROJECTS = "manage-projects"
    MANAGE_CLIENTS = "manage-clients"
    MANAGE_USERS = "manage-users"
    VIEW_ALL_TIME_ENTRIES = "view-all-time-entries"
    MANAGE_TEAMS = "manage-teams"
    CREATE_USERS = "create-users"
    VIEW_USER_DETAILS = "view-user-details"
    VIEW_HOURLY_RATES = "view-hourly-rates"
    EDIT_HOURLY_RATES = "edit-hourly-rates"
    ADMIN_DASHBOARD = "admin-dashboard"
    MANAGE_SYSTEM_SETTINGS = "manage-system-settings"


class TeamRole(StrEnum):
    """团队内角色"""

    MEMBER = "member"
    LEADER = "leader"


class ContextType(StrEnum):
    """提及发生的上下文类型"""

    COMMENT = "comment"
    NOTE = "note"
    MESSAGE = "message"
    TASK = "task"


class NotificationType(StrEnum):
    """通知类型"""

    MENTION = "mention"


class TextField(StrEnum):
    """任务上可协同编辑的自由文本字段"""

    DESCRIPTION = "description"
    NOTES = "notes"


class MentionState(StrEnum):
    """输入框提及状态机"""

    IDLE = "idle"
    COMPOSING = "composing"
    SUGGESTIONS_OPEN = "suggestions_open"
