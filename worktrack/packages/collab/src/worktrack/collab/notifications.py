"""Notification Fan-out Service -- 提及通知的创建、订阅与已读状态

- 每个接收者独立创建，单个接收者失败只记录日志，不影响其他接收者，
  也不回滚已提交的评论/笔记
- 不给提及者自己发通知；同一次提交内同一接收者只发一条
- 幂等键 context_type:context_id:edit_id:recipient 防止同一次编辑重复投递
- 已读流转只允许接收者本人（路径按接收者划分），且幂等

存储布局：notifications/{recipient_user_id}/{notification_id}
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel, Field
from ulid import ULID
from worktrack.core.config import CHAT_URL_PATH, MANAGEMENT_URL_PATH
from worktrack.core.exceptions import NotificationNotFoundError, StoreWriteError
from worktrack.core.models import Actor, ContextType, Notification
from worktrack.core.store.protocols import DocumentStore

log = structlog.get_logger()

NotificationCallback = Callable[[list[Notification]], Awaitable[None] | None]

_MESSAGE_TEMPLATES: Mapping[ContextType, str] = MappingProxyType(
    {
        ContextType.COMMENT: "{name} mentioned you in a comment",
        ContextType.NOTE: "{name} mentioned you in notes",
        ContextType.TASK: "{name} mentioned you in a task",
        ContextType.MESSAGE: "{name} mentioned you in a message",
    }
)

# 任务详情页内的标签页
_TASK_TABS: Mapping[ContextType, str] = MappingProxyType(
    {
        ContextType.COMMENT: "comments",
        ContextType.NOTE: "notes",
        ContextType.TASK: "details",
    }
)


def notification_path(user_id: str, notification_id: str | None = None) -> str:
    if notification_id is None:
        return f"notifications/{user_id}"
    return f"notifications/{user_id}/{notification_id}"


def build_action_url(
    context_type: ContextType,
    context_id: str,
    task_id: str | None = None,
    project_id: str | None = None,
) -> str:
    """生成深链接，编码上下文类型与 ID，接收者可直接跳转到对应标签页"""
    if context_type == ContextType.MESSAGE:
        if project_id:
            return f"{CHAT_URL_PATH}?{urlencode({'team': project_id})}"
        return CHAT_URL_PATH

    target_task = task_id or (context_id if context_type == ContextType.TASK else None)
    if target_task is None:
        return MANAGEMENT_URL_PATH

    params = {"taskId": target_task, "tab": _TASK_TABS[context_type]}
    if context_id != target_task:
        params["contextId"] = context_id
    return f"{MANAGEMENT_URL_PATH}?{urlencode(params)}"


def _parse_notifications(snapshot: Any) -> list[Notification]:
    """快照 -> 通知列表（最新在前）"""
    items = (snapshot or {}).values()
    notifications = [Notification.model_validate(item) for item in items]
    return sorted(notifications, key=lambda n: n.created_at, reverse=True)


class FanOutResult(BaseModel):
    """一次 fan-out 的结果"""

    created: list[Notification] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list,
        description="跳过的接收者（提及自己，或同一次编辑已投递过）",
    )
    failed: dict[str, str] = Field(
        default_factory=dict,
        description="投递失败的接收者 -> 错误描述",
    )


class NotificationService:
    """提及通知服务"""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def notify_mentions(
        self,
        committer: Actor,
        mentioned_user_ids: Iterable[str],
        context_type: ContextType,
        context_title: str,
        context_id: str,
        project_id: str | None = None,
        task_id: str | None = None,
        edit_id: str | None = None,
    ) -> FanOutResult:
        """为一次提交中的提及逐个创建通知

        此方法不抛出投递异常：失败按接收者记录在 FanOutResult.failed 中。

        Args:
            committer: 提交者
            mentioned_user_ids: 提交时解析出的被提及用户
            context_type: 上下文类型
            context_title: 上下文标题（通常是任务标题）
            context_id: 上下文 ID
            project_id: 所属项目
            task_id: 所属任务
            edit_id: 触发本次 fan-out 的编辑 ID，未提供时每次调用视为新的编辑
        """
        result = FanOutResult()
        edit_id = edit_id or str(ULID())

        for user_id in dict.fromkeys(mentioned_user_ids):
            if user_id == committer.id:
                result.skipped.append(user_id)
                continue
            key = f"{context_type.value}:{context_id}:{edit_id}:{user_id}"
            try:
                if await self._already_delivered(user_id, key):
                    result.skipped.append(user_id)
                    continue
                notification = await self.create_mention_notification(
                    user_id,
                    committer,
                    context_type,
                    context_id,
                    context_title,
                    task_id=task_id,
                    project_id=project_id,
                    idempotency_key=key,
                )
            except Exception as e:
                await log.awarning(
                    "mention_notification_failed",
                    recipient_user_id=user_id,
                    context_type=context_type.value,
                    context_id=context_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                result.failed[user_id] = str(e)
                continue
            result.created.append(notification)

        await log.ainfo(
            "mentions_fanned_out",
            committer_id=committer.id,
            context_type=context_type.value,
            context_id=context_id,
            created=len(result.created),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    async def create_mention_notification(
        self,
        recipient_user_id: str,
        committer: Actor,
        context_type: ContextType,
        context_id: str,
        context_title: str,
        task_id: str | None = None,
        project_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> Notification:
        """创建一条提及通知

        Raises:
            StoreWriteError: 写入失败
        """
        base_path = notification_path(recipient_user_id)
        name = committer.name or "Unknown User"
        notification_id = await self._store.push(base_path)
        notification = Notification(
            id=notification_id,
            recipient_user_id=recipient_user_id,
            title=f"{name} mentioned you",
            message=_MESSAGE_TEMPLATES[context_type].format(name=name),
            mentioned_by=committer.id,
            mentioned_by_name=name,
            context_type=context_type,
            context_id=context_id,
            context_title=context_title,
            project_id=project_id,
            task_id=task_id,
            action_url=build_action_url(context_type, context_id, task_id, project_id),
            created_at=datetime.now(UTC),
            idempotency_key=idempotency_key,
        )
        path = notification_path(recipient_user_id, notification_id)
        try:
            await self._store.set(path, notification)
        except Exception as e:
            raise StoreWriteError(path, e) from e
        return notification

    async def get_notifications(self, user_id: str) -> list[Notification]:
        """接收者的全部通知，最新在前"""
        return _parse_notifications(await self._store.get(notification_path(user_id)))

    async def get_unread_count(self, user_id: str) -> int:
        return sum(1 for n in await self.get_notifications(user_id) if not n.is_read)

    async def subscribe_to_notifications(
        self,
        user_id: str,
        callback: NotificationCallback,
    ) -> Callable[[], None]:
        """订阅接收者的通知流

        callback 每次收到完整的通知列表（最新在前），可以是同步或异步函数。

        Returns:
            unsubscribe 函数，同步调用后不会再触发 callback
        """
        subscription = await self._store.subscribe(notification_path(user_id))

        async def _pump() -> None:
            async for snapshot in subscription:
                try:
                    outcome = callback(_parse_notifications(snapshot))
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    await log.awarning(
                        "notification_callback_failed",
                        user_id=user_id,
                        error_type=type(e).__name__,
                        error=str(e),
                    )

        pump = asyncio.create_task(_pump())

        def unsubscribe() -> None:
            subscription.close()
            pump.cancel()

        return unsubscribe

    async def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        """接收者本人将通知标记为已读

        Returns:
            True 表示发生了写入，已读的通知返回 False

        Raises:
            NotificationNotFoundError: 通知不存在或不属于该接收者
            StoreWriteError: 写入失败
        """
        path = notification_path(user_id, notification_id)
        data = await self._store.get(path)
        if not data or data.get("recipient_user_id") != user_id:
            raise NotificationNotFoundError(notification_id, user_id)
        if data.get("is_read"):
            return False
        try:
            await self._store.update(path, {"is_read": True})
        except Exception as e:
            raise StoreWriteError(path, e) from e
        return True

    async def mark_all_as_read(self, user_id: str) -> int:
        """批量标记已读，一次写入；没有未读通知时不写入

        Returns:
            本次标记的通知数量
        """
        unread = [n for n in await self.get_notifications(user_id) if not n.is_read]
        if not unread:
            return 0
        path = notification_path(user_id)
        try:
            await self._store.update(path, {f"{n.id}/is_read": True for n in unread})
        except Exception as e:
            raise StoreWriteError(path, e) from e
        await log.ainfo("notifications_marked_read", user_id=user_id, count=len(unread))
        return len(unread)

    async def _already_delivered(self, user_id: str, idempotency_key: str) -> bool:
        existing = await self._store.get(notification_path(user_id)) or {}
        return any(item.get("idempotency_key") == idempotency_key for item in existing.values())
