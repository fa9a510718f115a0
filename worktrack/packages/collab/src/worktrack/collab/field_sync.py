"""Collaborative Field Synchronizer

每个打开的任务视图（TaskView）持有且只持有一个 tasks/{task_id} 订阅，
订阅推送的快照是权威状态：

- comments（只追加）：发送时先乐观追加（ID 由 store.push 预分配），
  再持久化；失败时回滚该条。远端快照与本地列表序列化后相同则不做任何变更。
- description / notes（自由文本）：本地编辑进入草稿，正在编辑（聚焦或有未保存改动）
  时远端推送不会覆盖草稿；仅在显式保存时写入，store 层 last-write-wins。

关闭视图或切换任务时同步解除订阅，之后不会再有快照修改已关闭的视图。
"""

import asyncio
import contextlib
import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from ulid import ULID
from worktrack.core.exceptions import StoreWriteError
from worktrack.core.models import Actor, Comment, ContextType, Task, TextField
from worktrack.core.store.hub import Subscription
from worktrack.core.store.protocols import DocumentStore

from .mention_parser import MentionField, extract_mentioned_user_ids
from .notifications import FanOutResult, NotificationService
from .resolver import MentionableResolver

log = structlog.get_logger()

# 文本字段保存后触发的通知上下文
_FIELD_CONTEXT: dict[TextField, ContextType] = {
    TextField.NOTES: ContextType.NOTE,
    TextField.DESCRIPTION: ContextType.TASK,
}


def task_path(task_id: str) -> str:
    return f"tasks/{task_id}"


def _serialize(comments: Sequence[Comment]) -> str:
    return json.dumps(
        [c.model_dump(mode="json") for c in comments],
        ensure_ascii=False,
        sort_keys=True,
    )


class CommentListSync:
    """只追加列表的本地状态"""

    def __init__(self) -> None:
        self.items: list[Comment] = []
        self._pending: dict[str, Comment] = {}
        self._last_applied = _serialize(self.items)

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def apply_remote(self, remote: Sequence[Comment]) -> bool:
        """应用远端列表

        尚未确认的乐观条目若不在远端列表中，追加在末尾继续显示。

        Returns:
            True 表示本地列表发生了变化
        """
        remote_ids = {c.id for c in remote}
        merged = [*remote, *(c for c in self._pending.values() if c.id not in remote_ids)]
        serialized = _serialize(merged)
        if serialized == self._last_applied:
            return False
        self.items = merged
        self._last_applied = serialized
        return True

    def add_optimistic(self, comment: Comment) -> None:
        self._pending[comment.id] = comment
        self.items = [*self.items, comment]
        self._last_applied = _serialize(self.items)

    def confirm(self, comment_id: str) -> None:
        self._pending.pop(comment_id, None)

    def rollback(self, comment_id: str) -> bool:
        """移除写入失败的乐观条目"""
        self._pending.pop(comment_id, None)
        remaining = [c for c in self.items if c.id != comment_id]
        removed = len(remaining) != len(self.items)
        self.items = remaining
        self._last_applied = _serialize(self.items)
        return removed


class TextFieldSync:
    """自由文本字段的草稿缓冲

    base 是本视图已知的最新存储值（包括自己保存的值）；
    value 与 base 不同即视为有未保存草稿。
    """

    def __init__(self, name: TextField, initial: str = "") -> None:
        self.name = name
        self.value = initial
        self.base = initial
        self.remote_value = initial
        self.focused = False
        self.saving = False
        self.last_error: Exception | None = None

    @property
    def is_dirty(self) -> bool:
        return self.value != self.base

    @property
    def is_drafting(self) -> bool:
        return self.focused or self.is_dirty

    def focus(self) -> None:
        self.focused = True

    def blur(self) -> bool:
        """失焦；没有未保存改动时补上聚焦期间搁置的远端值

        Returns:
            True 表示 value 被远端值替换
        """
        self.focused = False
        if self.is_dirty or self.remote_value == self.base:
            return False
        self.value = self.remote_value
        self.base = self.remote_value
        return True

    def edit(self, text: str) -> None:
        self.value = text

    def apply_remote(self, remote: str) -> bool:
        """应用远端推送

        Returns:
            True 表示 value 被远端值替换
        """
        self.remote_value = remote
        if remote == self.base:
            return False
        if remote == self.value:
            # 远端恰好与草稿一致，草稿不再是未保存状态
            self.base = remote
            return False
        if self.is_drafting:
            log.debug("remote_update_deferred", field=self.name.value)
            return False
        self.value = remote
        self.base = remote
        return True

    def discard_draft(self) -> None:
        """放弃草稿，回到最近一次远端值"""
        self.value = self.remote_value
        self.base = self.remote_value

    def mark_saved(self, value: str) -> None:
        self.base = value
        self.remote_value = value
        self.last_error = None


class TaskView:
    """一个打开的任务视图"""

    def __init__(
        self,
        store: DocumentStore,
        task_id: str,
        actor: Actor,
        resolver: MentionableResolver,
        *,
        notifier: NotificationService | None = None,
        on_change: Callable[["TaskView"], Any] | None = None,
    ) -> None:
        self._store = store
        self._actor = actor
        self._resolver = resolver
        self._notifier = notifier
        self._on_change = on_change
        self._subscription: Subscription | None = None
        self._pump: asyncio.Task | None = None
        self._reset_state(task_id)

    def _reset_state(self, task_id: str) -> None:
        self.task_id = task_id
        self.task: Task | None = None
        self.comments = CommentListSync()
        self.fields: dict[TextField, TextFieldSync] = {
            name: TextFieldSync(name) for name in TextField
        }

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    def field(self, name: TextField) -> TextFieldSync:
        return self.fields[TextField(name)]

    def blur_field(self, name: TextField) -> bool:
        """字段失焦，补上的远端值会触发 on_change"""
        applied = self.field(name).blur()
        if applied:
            self._emit_change()
        return applied

    def _log_context(self) -> contextlib.AbstractContextManager:
        return structlog.contextvars.bound_contextvars(
            task_id=self.task_id,
            actor_id=self._actor.id,
        )

    async def open(self) -> None:
        """建立订阅；已打开时不重复订阅"""
        if self._subscription is not None:
            return
        subscription = await self._store.subscribe(task_path(self.task_id))
        self._subscription = subscription
        # 消费 task 复制当前 context，日志自带 task_id / actor_id
        with self._log_context():
            self._pump = asyncio.create_task(self._consume(subscription))
            log.debug("task_view_opened")

    def close(self) -> None:
        """同步解除订阅"""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._pump is not None:
            self._pump.cancel()
            self._pump = None

    async def switch_task(self, task_id: str) -> None:
        """切换到另一个任务：先拆除旧订阅，再订阅新任务"""
        if task_id == self.task_id and self.is_open:
            return
        self.close()
        self._reset_state(task_id)
        await self.open()

    async def __aenter__(self) -> "TaskView":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def _consume(self, subscription: Subscription) -> None:
        try:
            async for snapshot in subscription:
                if subscription.closed:
                    break
                self._apply_snapshot(snapshot)
        except Exception as e:
            await log.awarning(
                "task_view_snapshot_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
        finally:
            # 订阅被 hub 丢弃或快照处理失败：视图转为关闭状态，可重新 open()
            if self._subscription is subscription:
                subscription.close()
                self._subscription = None
                self._pump = None
                log.warning("task_view_detached")

    def _apply_snapshot(self, snapshot: Any) -> None:
        task = Task.from_document(self.task_id, snapshot)
        changed = self.comments.apply_remote(task.comments)
        for name, field in self.fields.items():
            changed = field.apply_remote(getattr(task, name.value)) or changed
        self.task = task
        if changed:
            self._emit_change()

    def _emit_change(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    async def send_comment(self, field: MentionField) -> Comment:
        """发送评论：乐观追加 -> 持久化 -> 通知 fan-out

        提及无论成功与否都会被清空；文本仅在成功时清空，失败时保留供重试。

        Raises:
            ValueError: 评论内容为空
            StoreWriteError: 写入失败（乐观条目已回滚）
        """
        content = field.text.strip()
        if not content:
            raise ValueError("评论内容不能为空")

        with self._log_context():
            task = self.task or Task(id=self.task_id)
            allowed = {c.id for c in await self._resolver.resolve(self._actor, task)}
            mentioned = extract_mentioned_user_ids(content, field.mentions, allowed)

            comments_path = f"{task_path(self.task_id)}/comments"
            comment_id = await self._store.push(comments_path)
            comment = Comment(
                id=comment_id,
                content=content,
                author_id=self._actor.id,
                author_name=self._actor.name,
                created_at=datetime.now(UTC),
                mentions=mentioned,
            )
            self.comments.add_optimistic(comment)
            self._emit_change()

            path = f"{comments_path}/{comment_id}"
            try:
                await self._store.set(path, comment)
            except Exception as e:
                self.comments.rollback(comment_id)
                field.clear_mentions()
                self._emit_change()
                await log.awarning(
                    "comment_write_failed",
                    comment_id=comment_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise StoreWriteError(path, e) from e

            self.comments.confirm(comment_id)
            field.reset()

            if self._notifier is not None and mentioned:
                await self._notifier.notify_mentions(
                    self._actor,
                    mentioned,
                    ContextType.COMMENT,
                    task.title,
                    comment_id,
                    project_id=task.project_id,
                    task_id=self.task_id,
                    edit_id=comment_id,
                )
            return comment

    async def save_field(
        self,
        name: TextField,
        mentions: MentionField | None = None,
    ) -> FanOutResult | None:
        """显式保存自由文本字段（blur / 保存按钮）

        没有未保存改动时不写入，避免用本地旧值覆盖其他会话刚保存的内容。
        失败时草稿保持未保存状态，错误记录在 last_error 并上抛。

        Args:
            name: 字段名
            mentions: 该字段对应的提及状态机，提交后其提及被清空

        Returns:
            发生了通知 fan-out 时返回结果，否则 None

        Raises:
            StoreWriteError: 写入失败
        """
        name = TextField(name)
        field = self.fields[name]
        value = field.value
        path = f"{task_path(self.task_id)}/{name.value}"

        with self._log_context():
            if not field.is_dirty:
                if mentions is not None:
                    mentions.clear_mentions()
                log.debug("field_save_skipped", field=name.value)
                return None

            mentioned: list[str] = []
            if mentions is not None and mentions.mentions:
                task = self.task or Task(id=self.task_id)
                allowed = {c.id for c in await self._resolver.resolve(self._actor, task)}
                mentioned = extract_mentioned_user_ids(value, mentions.mentions, allowed)

            field.saving = True
            try:
                await self._store.set(path, value)
            except Exception as e:
                field.last_error = e
                await log.awarning(
                    "field_save_failed",
                    field=name.value,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise StoreWriteError(path, e) from e
            finally:
                field.saving = False
                if mentions is not None:
                    mentions.clear_mentions()

            field.mark_saved(value)

            if self._notifier is None or not mentioned:
                return None
            task = self.task or Task(id=self.task_id)
            return await self._notifier.notify_mentions(
                self._actor,
                mentioned,
                _FIELD_CONTEXT[name],
                task.title,
                self.task_id,
                project_id=task.project_id,
                task_id=self.task_id,
                edit_id=str(ULID()),
            )
