"""模块说明：queue。"""

import asyncio
from typing import Callable, Awaitable

from loguru import logger

from stickerbot.bus.events import InboundUpdate, OutboundMessage


class MessageBus:
    """渠道与分发器之间的异步队列。

    inbound 承载渠道收到的更新，outbound 承载核心请求的传输调用，
    出站消息按渠道名分发给订阅者。
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundUpdate] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._outbound_subscribers: dict[str, list[Callable[[OutboundMessage], Awaitable[None]]]] = {}
        self._running = False

    async def publish_inbound(self, update: InboundUpdate) -> None:
        """异步函数说明：publish_inbound。"""
        await self.inbound.put(update)

    async def consume_inbound(self) -> InboundUpdate:
        """异步函数说明：consume_inbound。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """异步函数说明：publish_outbound。"""
        await self.outbound.put(msg)

    def subscribe_outbound(
        self,
        channel: str,
        callback: Callable[[OutboundMessage], Awaitable[None]]
    ) -> None:
        """函数说明：subscribe_outbound。"""
        self._outbound_subscribers.setdefault(channel, []).append(callback)

    async def dispatch_outbound(self) -> None:
        """把出站消息交给对应渠道；单个订阅者失败不影响其他消息。"""
        self._running = True
        while self._running:
            try:
                msg = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            subscribers = self._outbound_subscribers.get(msg.channel, [])
            if not subscribers:
                logger.warning(f"No subscriber for outbound {msg.method} on {msg.channel}")
            for callback in subscribers:
                try:
                    await callback(msg)
                except Exception as e:
                    logger.error(f"Error dispatching {msg.method} to {msg.channel}: {e}")

    def stop(self) -> None:
        """函数说明：stop。"""
        self._running = False

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()
