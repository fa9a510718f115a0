"""Task / Comment Domain Model

Task 是租户内的共享多写资源；comments 只追加，不修改。
存储侧 comments 为 push id -> comment 的映射，push id 为 ULID，
因此映射的存储顺序即插入顺序。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Comment(BaseModel):
    """任务评论 -- 提交后只追加，不修改"""

    id: str = Field(description="评论 ID（store push id）")
    content: str = Field(description="评论正文")
    author_id: str = Field(description="作者 ID")
    author_name: str = Field(default="", description="作者名称")
    created_at: datetime = Field(description="创建时间")
    mentions: list[str] = Field(
        default_factory=list,
        description="被提及的用户 ID（去重，保持首次出现顺序）",
    )

    @field_validator("mentions")
    @classmethod
    def _dedupe_mentions(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class Task(BaseModel):
    """Task 数据模型（协同相关字段）"""

    id: str = Field(description="任务 ID")
    title: str = Field(default="", description="任务标题")
    project_id: str | None = Field(default=None, description="所属项目")
    assignee_id: str | None = Field(default=None, description="负责人")
    created_by: str | None = Field(default=None, description="创建者")
    tenant_id: str | None = Field(default=None, description="所属租户")
    description: str = Field(default="", description="任务描述")
    notes: str = Field(default="", description="协同笔记")
    comments: list[Comment] = Field(default_factory=list, description="评论（插入顺序）")

    @classmethod
    def from_document(cls, task_id: str, document: dict[str, Any] | None) -> "Task":
        """将 store 文档转换为 Task

        Args:
            task_id: 任务 ID
            document: store 中 tasks/{task_id} 的快照，不存在时为 None
        """
        data = dict(document or {})
        raw_comments = data.pop("comments", None) or {}
        if isinstance(raw_comments, dict):
            raw_comments = list(raw_comments.values())
        data["id"] = task_id
        data["comments"] = [Comment.model_validate(c) for c in raw_comments]
        return cls.model_validate(data)
