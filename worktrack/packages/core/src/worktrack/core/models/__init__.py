"""worktrack Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .actor import Actor, MentionableCandidate, TeamMember, UserRecord
from .enums import (
    Capability,
    ContextType,
    MentionState,
    NotificationType,
    Role,
    TeamRole,
    TextField,
)
from .mention import Mention
from .notification import Notification
from .task import Comment, Task

__all__ = [
    # 枚举
    "Role",
    "Capability",
    "TeamRole",
    "ContextType",
    "NotificationType",
    "TextField",
    "MentionState",
    # 身份与目录
    "Actor",
    "UserRecord",
    "TeamMember",
    "MentionableCandidate",
    # Task
    "Task",
    "Comment",
    # Mention
    "Mention",
    # Notification
    "Notification",
]
