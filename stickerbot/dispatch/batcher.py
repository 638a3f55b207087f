"""延迟应答的合并发送。

内联查询与回调按钮每个事件只能应答一次。处理器把应答追加到
ResponseBatcher，整个中间件链结束后统一发送一次。
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from stickerbot.bus.events import InboundUpdate, OutboundMessage, UpdateKind

ACK_METHODS = {
    UpdateKind.INLINE_QUERY: "answer_inline_query",
    UpdateKind.CALLBACK_QUERY: "answer_callback_query",
}


@dataclass
class DeferredAck:
    """类说明：DeferredAck。"""
    kind: UpdateKind
    args: tuple[Any, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)


class ResponseBatcher:
    """类说明：ResponseBatcher。"""

    def __init__(self, update: InboundUpdate):
        if not self.requires_ack(update):
            raise ValueError(f"{update.kind.value} updates are not acknowledged")
        self.update = update
        self.pending: list[DeferredAck] = []
        self.flushed = False

    @staticmethod
    def requires_ack(update: InboundUpdate) -> bool:
        return update.kind in ACK_METHODS

    def _append(self, kind: UpdateKind, args: tuple[Any, ...], options: dict[str, Any]) -> None:
        if kind is not self.update.kind:
            raise ValueError(f"Cannot add {kind.value} answer to a {self.update.kind.value} update")
        if self.flushed:
            raise RuntimeError("Response batch already flushed")
        self.pending.append(DeferredAck(kind=kind, args=args, options=options))

    def answer_inline_query(self, results: list[Any] | None = None, **options: Any) -> None:
        """追加内联结果；多次调用的结果按顺序拼接，选项后者覆盖前者。"""
        self._append(UpdateKind.INLINE_QUERY, (list(results or []),), options)

    def answer_callback_query(self, text: str | None = None, **options: Any) -> None:
        """追加回调应答；发送时使用最后一次给出的文本。"""
        self._append(UpdateKind.CALLBACK_QUERY, (text,), options)

    def build(self) -> OutboundMessage:
        """把积累的应答合并为一次传输调用；没有应答时生成空应答。"""
        method = ACK_METHODS[self.update.kind]
        options: dict[str, Any] = {}
        for ack in self.pending:
            options.update(ack.options)

        if self.update.kind is UpdateKind.INLINE_QUERY:
            results: list[Any] = []
            for ack in self.pending:
                results.extend(ack.args[0])
            params = {"inline_query_id": self.update.query_id, "results": results, **options}
            content = ""
        else:
            texts = [ack.args[0] for ack in self.pending if ack.args[0] is not None]
            content = texts[-1] if texts else ""
            params = {"callback_query_id": self.update.query_id, "text": texts[-1] if texts else None, **options}

        return OutboundMessage(
            channel=self.update.channel,
            chat_id=self.update.origin.chat_id,
            content=content,
            method=method,
            params=params,
        )

    async def flush(self, publish: Callable[[OutboundMessage], Awaitable[None]]) -> OutboundMessage:
        """发送合并后的应答，每个事件只允许调用一次。"""
        if self.flushed:
            raise RuntimeError("Response batch already flushed")
        self.flushed = True
        msg = self.build()
        logger.debug(f"Flushing {msg.method} with {len(self.pending)} deferred answer(s)")
        await publish(msg)
        return msg
