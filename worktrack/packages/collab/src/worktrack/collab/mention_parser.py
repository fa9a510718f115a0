"""Mention Parser & Suggestion Engine

每个可编辑输入框一个 MentionField 状态机：idle -> composing -> suggestions_open。

- 触发：光标前最后一个 '@' 与光标之间没有空白字符
- 候选查询是异步的，不阻塞输入回显；返回时若 query 已变化则整批丢弃
- 选中候选后把 '@query' 替换为 '@{name} '，记录一个 transient Mention
- 文本被改动时，span 按 '@name' 重新定位，定位不到的直接丢弃；
  提交时以最终文本重新扫描为准，不依赖实时维护的下标
"""

import asyncio
import re
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

import structlog
from ulid import ULID
from worktrack.core.config import MENTION_MIN_QUERY_LENGTH
from worktrack.core.exceptions import MentionStateError
from worktrack.core.models import Mention, MentionableCandidate, MentionState

log = structlog.get_logger()

CandidateSource = Callable[[], Awaitable[Sequence[MentionableCandidate]]]


@dataclass(frozen=True)
class MentionTrigger:
    """一次激活的 '@' 触发"""

    start_index: int  # '@' 所在下标
    end_index: int  # 光标位置
    query: str


def _clamp_cursor(text: str, cursor_pos: int | None) -> int:
    if cursor_pos is None:
        return len(text)
    return max(0, min(cursor_pos, len(text)))


def parse_mention_trigger(text: str, cursor_pos: int | None = None) -> MentionTrigger | None:
    """检测光标处是否有激活的 '@' 触发

    Args:
        text: 输入框当前文本
        cursor_pos: 光标位置，None 表示文本末尾

    Returns:
        MentionTrigger，没有激活触发时返回 None
    """
    cursor = _clamp_cursor(text, cursor_pos)
    head = text[:cursor]
    at = head.rfind("@")
    if at == -1:
        return None
    query = head[at + 1 :]
    if any(ch.isspace() for ch in query):
        return None
    return MentionTrigger(start_index=at, end_index=cursor, query=query)


def filter_candidates(
    candidates: Iterable[MentionableCandidate],
    query: str,
) -> list[MentionableCandidate]:
    """按名称或邮箱做大小写不敏感的子串匹配"""
    needle = query.lower()
    return [
        c for c in candidates if needle in c.name.lower() or needle in c.email.lower()
    ]


def _token_pattern(token: str) -> re.Pattern[str]:
    # '@Jo' 不应匹配 '@John'
    return re.compile(re.escape(token) + r"(?!\w)")


def relocate_mentions(text: str, mentions: Sequence[Mention]) -> list[Mention]:
    """文本变化后重新定位 span

    原位置仍是 '@name' 的保留；否则取离原位置最近、尚未被占用的 '@name'；
    都找不到的丢弃。
    """
    relocated: list[Mention] = []
    taken: set[int] = set()
    for mention in mentions:
        token = mention.token
        start = mention.start_index
        if start not in taken and _token_pattern(token).match(text, start):
            relocated.append(mention)
            taken.add(start)
            continue
        free = [
            m.start()
            for m in _token_pattern(token).finditer(text)
            if m.start() not in taken
        ]
        if not free:
            log.debug("mention_span_dropped", user_id=mention.user_id)
            continue
        new_start = min(free, key=lambda i: abs(i - start))
        relocated.append(
            mention.model_copy(
                update={"start_index": new_start, "end_index": new_start + len(token)}
            )
        )
        taken.add(new_start)
    return relocated


def extract_mentioned_user_ids(
    text: str,
    mentions: Iterable[Mention],
    allowed: Iterable[str] | None = None,
) -> list[str]:
    """提交时重新扫描最终文本，返回仍然存在的提及用户 ID

    Args:
        text: 最终提交的文本
        mentions: 输入框内的 transient Mention
        allowed: 提交时的可提及集合；不在其中的用户不会进入结果

    Returns:
        去重后的用户 ID，保持首次出现顺序
    """
    allowed_ids = set(allowed) if allowed is not None else None
    user_ids: list[str] = []
    for mention in mentions:
        if allowed_ids is not None and mention.user_id not in allowed_ids:
            continue
        if _token_pattern(mention.token).search(text):
            user_ids.append(mention.user_id)
    return list(dict.fromkeys(user_ids))


class MentionField:
    """单个输入框的提及状态机"""

    def __init__(
        self,
        source: CandidateSource,
        *,
        min_query_length: int = MENTION_MIN_QUERY_LENGTH,
    ) -> None:
        """
        Args:
            source: 候选来源，每次查询都会重新调用（通常是 resolver.resolve 的闭包）
            min_query_length: '@' 后至少多少字符才发起查询
        """
        self._source = source
        self._min_query_length = max(1, min_query_length)
        self.text = ""
        self.cursor = 0
        self.state = MentionState.IDLE
        self.query = ""
        self.suggestions: list[MentionableCandidate] = []
        self.mentions: list[Mention] = []
        self._trigger: MentionTrigger | None = None
        self._lookup: asyncio.Task | None = None

    @property
    def trigger(self) -> MentionTrigger | None:
        return self._trigger

    @property
    def pending_lookup(self) -> asyncio.Task | None:
        """最近一次尚未完成的候选查询"""
        if self._lookup is None or self._lookup.done():
            return None
        return self._lookup

    def handle_input(self, text: str, cursor_pos: int | None = None) -> asyncio.Task | None:
        """处理一次输入（同步更新文本，候选查询异步进行）

        Returns:
            发起了候选查询时返回对应的 asyncio.Task，否则 None
        """
        if text != self.text:
            self.mentions = relocate_mentions(text, self.mentions)
        self.text = text
        self.cursor = _clamp_cursor(text, cursor_pos)

        trigger = parse_mention_trigger(text, self.cursor)
        if trigger is None or not trigger.query:
            self._go_idle()
            return None

        self._trigger = trigger
        self.query = trigger.query
        if len(trigger.query) < self._min_query_length:
            self.state = MentionState.COMPOSING
            self.suggestions = []
            return None

        if self.state == MentionState.IDLE:
            self.state = MentionState.COMPOSING
        # 旧查询不取消，由 _load_suggestions 按 query 比对丢弃其结果
        self._lookup = asyncio.create_task(self._load_suggestions(trigger.query))
        return self._lookup

    async def _load_suggestions(self, query: str) -> list[MentionableCandidate]:
        try:
            candidates = await self._source()
        except Exception as e:
            await log.awarning(
                "mention_suggestions_failed",
                query=query,
                error_type=type(e).__name__,
                error=str(e),
            )
            candidates = []

        if self._trigger is None or self.query != query:
            log.debug("stale_suggestions_discarded", query=query, current=self.query)
            return []

        self.suggestions = filter_candidates(candidates, query)
        self.state = MentionState.SUGGESTIONS_OPEN
        return self.suggestions

    def insert_mention(self, candidate: MentionableCandidate) -> Mention:
        """用 '@{name} ' 替换正在输入的 '@query'，并记录 transient Mention

        Raises:
            MentionStateError: 当前没有激活的 '@' 触发
        """
        trigger = self._trigger
        if trigger is None:
            raise MentionStateError()

        token = f"@{candidate.name}"
        before = self.text[: trigger.start_index]
        after = self.text[trigger.end_index :]
        mention = Mention(
            id=str(ULID()),
            user_id=candidate.id,
            user_name=candidate.name,
            start_index=trigger.start_index,
            end_index=trigger.start_index + len(token),
        )

        # 触发位置之后的已有 span 整体平移
        shift = len(token) + 1 - (trigger.end_index - trigger.start_index)
        shifted = [
            m
            if m.start_index < trigger.start_index
            else m.model_copy(
                update={
                    "start_index": m.start_index + shift,
                    "end_index": m.end_index + shift,
                }
            )
            for m in self.mentions
        ]

        self.text = f"{before}{token} {after}"
        self.cursor = mention.end_index + 1
        self.mentions = [*shifted, mention]
        self._go_idle()
        return mention

    def remove_mention(self, mention_id: str) -> bool:
        """删除一个 transient Mention（不修改文本）"""
        remaining = [m for m in self.mentions if m.id != mention_id]
        removed = len(remaining) != len(self.mentions)
        self.mentions = remaining
        return removed

    def clear_mentions(self) -> None:
        self.mentions = []

    def reset(self) -> None:
        """清空文本与提及（提交成功后调用），并取消进行中的候选查询"""
        if self._lookup is not None:
            self._lookup.cancel()
            self._lookup = None
        self.text = ""
        self.cursor = 0
        self.clear_mentions()
        self._go_idle()

    def committed_user_ids(self, allowed: Iterable[str] | None = None) -> list[str]:
        return extract_mentioned_user_ids(self.text, self.mentions, allowed)

    def _go_idle(self) -> None:
        self.state = MentionState.IDLE
        self.query = ""
        self.suggestions = []
        self._trigger = None
