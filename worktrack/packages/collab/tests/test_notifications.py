"""Notification Fan-out 测试

测试内容：
1. 不通知提及者自己；同一次提交同一接收者只有一条
2. 单个接收者失败不影响其他接收者
3. 同一次编辑重试不重复投递
4. 已读流转：单条幂等、批量一次写入、重复调用无写入
5. 订阅 / 取消订阅
6. 深链接
"""

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest
from worktrack.collab import NotificationService, build_action_url
from worktrack.core.exceptions import NotificationNotFoundError, StoreWriteError
from worktrack.core.models import Actor, ContextType


async def _notify(notifier: NotificationService, committer: Actor, ids, **kwargs):
    params = {
        "context_type": ContextType.COMMENT,
        "context_title": "Ship it",
        "context_id": "c1",
        "task_id": "task1",
        "project_id": "p1",
    }
    params.update(kwargs)
    return await notifier.notify_mentions(committer, ids, **params)


class TestFanOut:
    async def test_scenario_hr_mentions_teammate(self, notifier: NotificationService, hana: Actor):
        result = await _notify(notifier, hana, ["u-alice"])

        assert len(result.created) == 1
        notifications = await notifier.get_notifications("u-alice")
        assert len(notifications) == 1
        notification = notifications[0]
        assert notification.context_type == ContextType.COMMENT
        assert notification.context_title == "Ship it"
        assert notification.mentioned_by == "u-hana"
        assert notification.message == "Hana mentioned you in a comment"
        assert "taskId=task1" in notification.action_url
        assert "tab=comments" in notification.action_url
        assert notification.is_read is False

    async def test_self_mention_skipped(self, notifier: NotificationService, hana: Actor):
        result = await _notify(notifier, hana, ["u-hana", "u-alice"])

        assert result.skipped == ["u-hana"]
        assert [n.recipient_user_id for n in result.created] == ["u-alice"]
        assert await notifier.get_notifications("u-hana") == []

    async def test_duplicate_mention_single_notification(
        self, notifier: NotificationService, hana: Actor
    ):
        await _notify(notifier, hana, ["u-alice", "u-bob", "u-alice"])

        assert len(await notifier.get_notifications("u-alice")) == 1
        assert len(await notifier.get_notifications("u-bob")) == 1

    async def test_retry_same_edit_not_redelivered(
        self, notifier: NotificationService, hana: Actor
    ):
        first = await _notify(notifier, hana, ["u-alice"], edit_id="edit-1")
        second = await _notify(notifier, hana, ["u-alice"], edit_id="edit-1")

        assert len(first.created) == 1
        assert second.created == []
        assert second.skipped == ["u-alice"]
        assert len(await notifier.get_notifications("u-alice")) == 1

    async def test_separate_edits_each_notify(self, notifier: NotificationService, hana: Actor):
        await _notify(notifier, hana, ["u-alice"], edit_id="edit-1")
        await _notify(notifier, hana, ["u-alice"], edit_id="edit-2")
        assert len(await notifier.get_notifications("u-alice")) == 2

    async def test_recipient_failure_isolated(
        self,
        flaky_store,
        notifier: NotificationService,
        hana: Actor,
    ):
        flaky_store.fail_prefixes.add("notifications/u-bob")

        result = await _notify(notifier, hana, ["u-bob", "u-alice"])

        assert list(result.failed) == ["u-bob"]
        assert [n.recipient_user_id for n in result.created] == ["u-alice"]
        assert await notifier.get_notifications("u-bob") == []

    async def test_create_raises_store_write_error(
        self,
        flaky_store,
        notifier: NotificationService,
        hana: Actor,
    ):
        flaky_store.fail_prefixes.add("notifications/u-alice")
        with pytest.raises(StoreWriteError) as exc_info:
            await notifier.create_mention_notification(
                "u-alice", hana, ContextType.NOTE, "task1", "Ship it"
            )
        assert exc_info.value.recoverable is True
        assert isinstance(exc_info.value.original_error, RuntimeError)

    @pytest.mark.parametrize(
        "context_type,message",
        [
            (ContextType.COMMENT, "Unknown User mentioned you in a comment"),
            (ContextType.NOTE, "Unknown User mentioned you in notes"),
            (ContextType.TASK, "Unknown User mentioned you in a task"),
            (ContextType.MESSAGE, "Unknown User mentioned you in a message"),
        ],
    )
    async def test_message_templates(
        self,
        notifier: NotificationService,
        context_type: ContextType,
        message: str,
    ):
        anonymous = Actor(id="u-anon", tenant_id="T1")
        notification = await notifier.create_mention_notification(
            "u-alice", anonymous, context_type, "ctx-1", "Ship it"
        )
        assert notification.message == message
        assert notification.mentioned_by_name == "Unknown User"


class TestReadState:
    async def test_newest_first_and_unread_count(
        self, notifier: NotificationService, hana: Actor
    ):
        await _notify(notifier, hana, ["u-alice"], context_id="c1")
        await asyncio.sleep(0.002)
        await _notify(notifier, hana, ["u-alice"], context_id="c2")

        notifications = await notifier.get_notifications("u-alice")
        assert [n.context_id for n in notifications] == ["c2", "c1"]
        assert await notifier.get_unread_count("u-alice") == 2

    async def test_mark_as_read(self, notifier: NotificationService, hana: Actor):
        result = await _notify(notifier, hana, ["u-alice"])
        notification_id = result.created[0].id

        assert await notifier.mark_as_read(notification_id, "u-alice") is True
        assert await notifier.mark_as_read(notification_id, "u-alice") is False
        assert await notifier.get_unread_count("u-alice") == 0

    async def test_mark_as_read_other_recipient(
        self, notifier: NotificationService, hana: Actor
    ):
        result = await _notify(notifier, hana, ["u-alice"])
        with pytest.raises(NotificationNotFoundError):
            await notifier.mark_as_read(result.created[0].id, "u-bob")

    async def test_mark_as_read_missing(self, notifier: NotificationService):
        with pytest.raises(NotificationNotFoundError):
            await notifier.mark_as_read("nope", "u-alice")

    async def test_mark_all_as_read_idempotent(
        self,
        flaky_store,
        notifier: NotificationService,
        hana: Actor,
    ):
        await _notify(notifier, hana, ["u-alice"], context_id="c1")
        await _notify(notifier, hana, ["u-alice"], context_id="c2")

        writes_before = flaky_store.write_count
        assert await notifier.mark_all_as_read("u-alice") == 2
        assert flaky_store.write_count == writes_before + 1
        assert all(n.is_read for n in await notifier.get_notifications("u-alice"))

        assert await notifier.mark_all_as_read("u-alice") == 0
        assert flaky_store.write_count == writes_before + 1
        assert all(n.is_read for n in await notifier.get_notifications("u-alice"))

    async def test_mark_all_as_read_empty(
        self, flaky_store, notifier: NotificationService
    ):
        writes_before = flaky_store.write_count
        assert await notifier.mark_all_as_read("u-nobody") == 0
        assert flaky_store.write_count == writes_before

    async def test_mark_all_as_read_failure(
        self,
        flaky_store,
        notifier: NotificationService,
        hana: Actor,
    ):
        await _notify(notifier, hana, ["u-alice"])
        flaky_store.fail_prefixes.add("notifications/u-alice")
        with pytest.raises(StoreWriteError):
            await notifier.mark_all_as_read("u-alice")
        assert await notifier.get_unread_count("u-alice") == 1


class TestSubscription:
    async def test_callback_receives_updates(
        self,
        flaky_store,
        notifier: NotificationService,
        hana: Actor,
        wait_until,
    ):
        received = []
        unsubscribe = await notifier.subscribe_to_notifications("u-alice", received.append)
        await wait_until(lambda: len(received) == 1)
        assert received[0] == []

        await _notify(notifier, hana, ["u-alice"])
        await wait_until(lambda: len(received) == 2)
        assert [n.recipient_user_id for n in received[1]] == ["u-alice"]

        unsubscribe()
        assert flaky_store.hub.subscriber_count() == 0

        await _notify(notifier, hana, ["u-alice"], context_id="c2")
        await asyncio.sleep(0.05)
        assert len(received) == 2

    async def test_async_callback(
        self, notifier: NotificationService, hana: Actor, wait_until
    ):
        counts = []

        async def on_notifications(notifications):
            counts.append(sum(1 for n in notifications if not n.is_read))

        unsubscribe = await notifier.subscribe_to_notifications("u-alice", on_notifications)
        await _notify(notifier, hana, ["u-alice"])
        await wait_until(lambda: counts[-1:] == [1])
        unsubscribe()


class TestActionUrl:
    def _query(self, url: str) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}

    def test_comment(self):
        url = build_action_url(ContextType.COMMENT, "c1", task_id="task1", project_id="p1")
        assert urlparse(url).path == "/management"
        assert self._query(url) == {"taskId": "task1", "tab": "comments", "contextId": "c1"}

    def test_note(self):
        url = build_action_url(ContextType.NOTE, "task1", task_id="task1")
        assert self._query(url) == {"taskId": "task1", "tab": "notes"}

    def test_task_without_task_id(self):
        url = build_action_url(ContextType.TASK, "task9")
        assert self._query(url) == {"taskId": "task9", "tab": "details"}

    def test_message(self):
        assert build_action_url(ContextType.MESSAGE, "m1", project_id="p1") == "/chat?team=p1"
        assert build_action_url(ContextType.MESSAGE, "m1") == "/chat"

    def test_comment_without_task(self):
        assert build_action_url(ContextType.COMMENT, "c1") == "/management"
