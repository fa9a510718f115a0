"""worktrack Collab -- 任务协同核心

提及解析、可提及集合、字段实时同步、提及通知。
"""

from .field_sync import CommentListSync, TaskView, TextFieldSync
from .mention_parser import (
    MentionField,
    MentionTrigger,
    extract_mentioned_user_ids,
    filter_candidates,
    parse_mention_trigger,
)
from .notifications import FanOutResult, NotificationService, build_action_url
from .resolver import MentionableResolver

__all__ = [
    # Resolver
    "MentionableResolver",
    # Mention parser
    "MentionField",
    "MentionTrigger",
    "parse_mention_trigger",
    "filter_candidates",
    "extract_mentioned_user_ids",
    # Field sync
    "TaskView",
    "CommentListSync",
    "TextFieldSync",
    # Notifications
    "NotificationService",
    "FanOutResult",
    "build_action_url",
]
