"""DocumentStore SQLite 实现

路径前两段 collection/doc_id 定位一行 JSON 文档，其余段在文档内部寻址：
tasks/t1/comments/c1 -> documents(collection='tasks', doc_id='t1') 中的 comments.c1。

写入在 store 级 asyncio.Lock 内完成：事务提交后立即向相关订阅者广播快照，
保证同一订阅内的快照顺序与提交顺序一致。
push id 使用 ULID，字典序即时间序，因此追加的子节点按插入顺序存储。
"""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import aiosqlite
import structlog
from pydantic import BaseModel
from ulid import ULID

from ..exceptions import InvalidPathError
from .hub import ChangeHub, Subscription

log = structlog.get_logger()


def split_path(path: str) -> list[str]:
    """拆分路径，忽略首尾及重复的 '/'"""
    segments = [segment for segment in path.strip().split("/") if segment]
    if not segments:
        raise InvalidPathError(path)
    return segments


def normalize_path(path: str) -> str:
    return "/".join(split_path(path))


def is_related_path(a: str, b: str) -> bool:
    """两个规范化路径是否互为祖先/后代（或相同）"""
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")


def _to_json_value(value: Any) -> Any:
    """转换为纯 JSON 值（拷贝一份，调用方后续修改不影响 store）"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return json.loads(json.dumps(value, ensure_ascii=False, default=_json_default))


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"无法序列化的类型: {type(value).__name__}")


def _dig(node: Any, keys: list[str]) -> Any:
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _assign(document: Any, keys: list[str], value: Any) -> Any:
    """在文档内部按 keys 写入 value（None 表示删除），返回新的文档根"""
    root = document if isinstance(document, dict) else {}
    node = root
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    if value is None:
        node.pop(keys[-1], None)
    else:
        node[keys[-1]] = value
    return root


class SqliteDocumentStore:
    """DocumentStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, hub: ChangeHub | None = None) -> None:
        self._conn = conn
        self._hub = hub or ChangeHub()
        self._write_lock = asyncio.Lock()

    @property
    def hub(self) -> ChangeHub:
        return self._hub

    async def get(self, path: str) -> Any:
        """读取路径快照，不存在时返回 None"""
        segments = split_path(path)
        if len(segments) == 1:
            return await self._load_collection(segments[0])
        document = await self._load(segments[0], segments[1])
        return _dig(document, segments[2:])

    async def set(self, path: str, value: Any) -> None:
        """整体写入路径；value 为 None 时删除"""
        segments = split_path(path)
        payload = _to_json_value(value)
        async with self._write_lock:
            try:
                await self._write(segments, payload)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
            await self._publish([segments])

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        """局部更新，partial 的所有键在同一事务内写入

        Args:
            path: 基础路径
            partial: 相对路径 -> 值，例如 {"n1/is_read": True}
        """
        base = split_path(path)
        writes = [
            (base + split_path(key), _to_json_value(value))
            for key, value in partial.items()
        ]
        if not writes:
            return
        async with self._write_lock:
            try:
                for segments, payload in writes:
                    await self._write(segments, payload)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
            await self._publish([segments for segments, _ in writes])

    async def push(self, path: str) -> str:
        """为路径下的新子节点分配 ULID（不写入）"""
        split_path(path)
        return str(ULID())

    async def subscribe(self, path: str) -> Subscription:
        """订阅路径：先投递当前快照，再投递之后的每次变更

        在写锁内完成注册与首个快照读取，避免与并发写入交错导致快照乱序。
        """
        normalized = normalize_path(path)
        async with self._write_lock:
            subscription = self._hub.subscribe(normalized)
            subscription.deliver(await self.get(normalized))
        return subscription

    async def _write(self, segments: list[str], payload: Any) -> None:
        collection = segments[0]
        if len(segments) == 1:
            if payload is not None and not isinstance(payload, dict):
                raise TypeError("集合级写入只接受 dict 或 None")
            await self._conn.execute(
                "DELETE FROM documents WHERE collection = ?",
                (collection,),
            )
            for doc_id, document in (payload or {}).items():
                await self._save(collection, doc_id, document)
            return

        doc_id = segments[1]
        if len(segments) == 2:
            document = payload
        else:
            current = await self._load(collection, doc_id)
            document = _assign(current, segments[2:], payload)
        await self._save(collection, doc_id, document)

    async def _save(self, collection: str, doc_id: str, document: Any) -> None:
        if document is None or document == {}:
            await self._conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            return
        await self._conn.execute(
            """
            INSERT INTO documents (collection, doc_id, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(collection, doc_id)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (
                collection,
                doc_id,
                json.dumps(document, ensure_ascii=False),
                datetime.now(UTC).isoformat(),
            ),
        )

    async def _load(self, collection: str, doc_id: str) -> Any:
        cursor = await self._conn.execute(
            "SELECT value FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def _load_collection(self, collection: str) -> dict[str, Any] | None:
        cursor = await self._conn.execute(
            "SELECT doc_id, value FROM documents WHERE collection = ? ORDER BY rowid",
            (collection,),
        )
        rows = await cursor.fetchall()
        if not rows:
            return None
        return {row[0]: json.loads(row[1]) for row in rows}

    async def _publish(self, written: list[list[str]]) -> None:
        """向与写入路径相关的订阅路径广播最新快照"""
        written_paths = ["/".join(segments) for segments in written]
        for sub_path in self._hub.paths():
            if any(is_related_path(sub_path, w) for w in written_paths):
                snapshot = await self.get(sub_path)
                delivered = self._hub.publish(sub_path, snapshot)
                log.debug("snapshot_published", path=sub_path, delivered=delivered)
