"""Notification Domain Model

每个 (提及, 接收者) 在提交时创建一次；归接收者所有，
唯一允许的修改是接收者本人的已读状态流转 is_read: False -> True。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ContextType, NotificationType


class Notification(BaseModel):
    """提及通知"""

    id: str = Field(description="通知 ID（store push id）")
    recipient_user_id: str = Field(description="接收者 ID")
    type: NotificationType = Field(default=NotificationType.MENTION)
    title: str = Field(default="", description="通知标题")
    message: str = Field(description="通知正文（按上下文类型生成）")
    mentioned_by: str = Field(description="提及者 ID")
    mentioned_by_name: str = Field(default="", description="提及者名称")
    context_type: ContextType = Field(description="上下文类型")
    context_id: str = Field(description="上下文 ID（评论 ID / 任务 ID / 消息 ID）")
    context_title: str = Field(default="", description="上下文标题")
    project_id: str | None = Field(default=None)
    task_id: str | None = Field(default=None)
    action_url: str = Field(description="深链接，可直接跳转到对应标签页")
    is_read: bool = Field(default=False)
    created_at: datetime = Field(description="创建时间")
    idempotency_key: str | None = Field(
        default=None,
        description="幂等键：同一次编辑对同一接收者只产生一条通知",
    )
