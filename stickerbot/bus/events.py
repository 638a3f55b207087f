"""事件类型：入站更新与出站调用。"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class UpdateKind(str, Enum):
    """类说明：UpdateKind。"""

    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CALLBACK_QUERY = "callback_query"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    POLL = "poll"
    POLL_ANSWER = "poll_answer"
    MY_CHAT_MEMBER = "my_chat_member"
    CHAT_MEMBER = "chat_member"
    UNKNOWN = "unknown"


MESSAGE_KINDS = frozenset({UpdateKind.MESSAGE, UpdateKind.EDITED_MESSAGE})

# 顺序有意义：动图消息同时带有 document 字段
CONTENT_TYPES = ("sticker", "animation", "video", "photo", "document", "text")


@dataclass(frozen=True)
class Origin:
    """事件来源：发送者与所在会话。"""

    sender_id: int | None = None
    chat_id: int | None = None
    chat_type: str | None = None  # private / group / supergroup / channel
    username: str | None = None
    first_name: str | None = None
    language_code: str | None = None


@dataclass(frozen=True)
class InboundUpdate:
    """平台推送的一条不可变更新。

    payload 保留平台原始字段（消息、回调、内联查询等），
    核心只读取少量字段，其余原样交给处理器。
    """

    kind: UpdateKind
    origin: Origin = field(default_factory=Origin)
    payload: dict[str, Any] = field(default_factory=dict)
    channel: str = "telegram"
    update_id: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_message(self) -> bool:
        return self.kind in MESSAGE_KINDS

    @property
    def text(self) -> str | None:
        """消息文本；非消息类更新返回 None。"""
        if not self.is_message:
            return None
        return self.payload.get("text")

    @property
    def callback_data(self) -> str | None:
        if self.kind is not UpdateKind.CALLBACK_QUERY:
            return None
        return self.payload.get("data")

    @property
    def query(self) -> str | None:
        """内联查询的文本。"""
        if self.kind is not UpdateKind.INLINE_QUERY:
            return None
        return self.payload.get("query", "")

    @property
    def query_id(self) -> str | None:
        if self.kind in (UpdateKind.CALLBACK_QUERY, UpdateKind.INLINE_QUERY):
            return self.payload.get("id")
        return None

    @property
    def content_types(self) -> tuple[str, ...]:
        """消息中出现的全部内容类型，按 CONTENT_TYPES 的顺序。"""
        if not self.is_message:
            return ()
        return tuple(t for t in CONTENT_TYPES if self.payload.get(t))

    @property
    def content_type(self) -> str | None:
        if not self.is_message:
            return None
        types = self.content_types
        return types[0] if types else "other"

    @property
    def forward_from_id(self) -> int | None:
        """被转发消息的原始发送者 ID（兼容新旧两种字段）。"""
        if not self.is_message:
            return None
        forward_from = self.payload.get("forward_from")
        if forward_from:
            return forward_from.get("id")
        forward_origin = self.payload.get("forward_origin") or {}
        if forward_origin.get("type") == "user":
            return (forward_origin.get("sender_user") or {}).get("id")
        return None

    @property
    def is_private(self) -> bool:
        o = self.origin
        if o.chat_type is not None:
            return o.chat_type == "private"
        return o.sender_id is not None and o.chat_id == o.sender_id


@dataclass
class OutboundMessage:
    """核心请求传输层执行的一次调用。

    method 为 send_message / answer_inline_query / answer_callback_query；
    除 send_message 外，chat_id 可以为空，目标由 params 中的 query_id 决定。
    """

    channel: str
    chat_id: int | str | None
    content: str = ""
    method: str = "send_message"
    reply_to: int | None = None
    params: dict[str, Any] = field(default_factory=dict)
