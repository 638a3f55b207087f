"""测试用的事件工厂与替身对象。"""

from itertools import count
from typing import Any

from stickerbot.bus.events import InboundUpdate, OutboundMessage, Origin, UpdateKind
from stickerbot.bus.queue import MessageBus
from stickerbot.errors import StoreError
from stickerbot.session.manager import MemorySessionStore, Session

_ids = count(1)


class FakeClock:
    """可手动推进的毫秒时钟。"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def message(
    text: str | None = None,
    sender: int | None = 1,
    chat: int | None = None,
    update_id: int | None = None,
    language_code: str | None = None,
    **fields: Any,
) -> InboundUpdate:
    """私聊文本消息；chat 与 sender 不同时视为群组。"""
    chat = sender if chat is None else chat
    chat_type = "private" if chat == sender else "group"
    payload: dict[str, Any] = {"message_id": next(_ids), **fields}
    if text is not None:
        payload["text"] = text
    return InboundUpdate(
        kind=UpdateKind.MESSAGE,
        origin=Origin(sender_id=sender, chat_id=chat, chat_type=chat_type, language_code=language_code),
        payload=payload,
        update_id=update_id if update_id is not None else next(_ids),
    )


def edited(text: str | None = None, sender: int = 1, **fields: Any) -> InboundUpdate:
    """私聊中被编辑的消息。"""
    payload: dict[str, Any] = {"message_id": next(_ids), "edit_date": 1, **fields}
    if text is not None:
        payload["text"] = text
    return InboundUpdate(
        kind=UpdateKind.EDITED_MESSAGE,
        origin=Origin(sender_id=sender, chat_id=sender, chat_type="private"),
        payload=payload,
        update_id=next(_ids),
    )


def callback(data: str, sender: int = 1, chat: int | None = None, query_id: str = "cb1") -> InboundUpdate:
    chat = sender if chat is None else chat
    return InboundUpdate(
        kind=UpdateKind.CALLBACK_QUERY,
        origin=Origin(sender_id=sender, chat_id=chat, chat_type="private" if chat == sender else "group"),
        payload={"id": query_id, "data": data},
        update_id=next(_ids),
    )


def inline_query(query: str = "", sender: int = 1, query_id: str = "iq1") -> InboundUpdate:
    return InboundUpdate(
        kind=UpdateKind.INLINE_QUERY,
        origin=Origin(sender_id=sender, username="alice", first_name="Alice", language_code="en"),
        payload={"id": query_id, "query": query},
        update_id=next(_ids),
    )


def update_of(kind: UpdateKind, sender: int | None = 1, chat: int | None = None) -> InboundUpdate:
    return InboundUpdate(kind=kind, origin=Origin(sender_id=sender, chat_id=chat), update_id=next(_ids))


class RecordingBus(MessageBus):
    """记录每次出站发布，同时写入共享事件日志。"""

    def __init__(self, log: list | None = None):
        super().__init__()
        self.log = log if log is not None else []
        self.published: list[OutboundMessage] = []

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        self.log.append(("publish", msg.method))
        self.published.append(msg)
        await super().publish_outbound(msg)

    def sent(self, method: str = "send_message") -> list[OutboundMessage]:
        return [m for m in self.published if m.method == method]


class RecordingStore(MemorySessionStore):
    """统计保存次数，可配置为保存失败。"""

    def __init__(self, log: list | None = None, fail: bool = False):
        super().__init__()
        self.log = log if log is not None else []
        self.fail = fail
        self.saves: list[str] = []

    async def save(self, key: str, session: Session) -> None:
        self.log.append(("save", key))
        self.saves.append(key)
        if self.fail:
            raise StoreError(key, "disk full")
        await super().save(key, session)
