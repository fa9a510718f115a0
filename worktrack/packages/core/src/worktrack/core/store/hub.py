"""ChangeHub -- 内存中的快照广播器

每个订阅者持有一个 asyncio.Queue，按 store 的发射顺序（FIFO）接收快照。
Subscription 同时是异步迭代器和取消句柄：close() 是同步的，
调用后不会再有任何快照投递给该订阅者。
"""

import asyncio
from collections import defaultdict
from typing import Any

import structlog

from ..config import SUBSCRIPTION_QUEUE_MAXSIZE

log = structlog.get_logger()

_CLOSED = object()


class Subscription:
    """单个路径上的订阅 -- async for 拉取快照，close() 解除订阅"""

    def __init__(self, hub: "ChangeHub", path: str, maxsize: int) -> None:
        self.path = path
        self._hub = hub
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, snapshot: Any) -> bool:
        """投递一个快照

        Returns:
            False 表示订阅已关闭或队列已满
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(snapshot)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """同步解除订阅，丢弃尚未消费的快照并唤醒等待中的消费者"""
        if self._closed:
            return
        self._closed = True
        self._hub._discard(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class ChangeHub:
    """快照广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = SUBSCRIPTION_QUEUE_MAXSIZE) -> None:
        # path -> set of Subscription
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    def subscribe(self, path: str) -> Subscription:
        """订阅指定路径

        Args:
            path: 规范化后的 store 路径

        Returns:
            Subscription 实例，新快照会被推送到其队列
        """
        subscription = Subscription(self, path, self._queue_maxsize)
        self._subscribers[path].add(subscription)
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.path)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.path]

    def paths(self) -> list[str]:
        """当前有订阅者的路径"""
        return list(self._subscribers)

    def subscriber_count(self, path: str | None = None) -> int:
        if path is not None:
            return len(self._subscribers.get(path, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, path: str, snapshot: Any) -> int:
        """向指定路径的所有订阅者广播快照

        Returns:
            成功投递的订阅者数量
        """
        delivered = 0
        for subscription in list(self._subscribers.get(path, ())):
            if subscription.deliver(snapshot):
                delivered += 1
                continue
            # 队列已满：丢弃该订阅，避免慢消费者拖住广播
            log.warning(
                "subscription_dropped",
                path=path,
                queue_maxsize=self._queue_maxsize,
            )
            subscription.close()
        return delivered
