"""模块说明：base。"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from stickerbot.bus.events import InboundUpdate, OutboundMessage
from stickerbot.bus.queue import MessageBus


class BaseChannel(ABC):
    """传输渠道：把平台更新转换为 InboundUpdate，并执行出站调用。"""

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        """函数说明：__init__。"""
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """异步函数说明：start。"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """异步函数说明：stop。"""
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """异步函数说明：send。"""
        pass

    def is_allowed(self, sender_id: int | None) -> bool:
        """allow_from 为空时允许所有人。"""
        allow_list = getattr(self.config, "allow_from", [])

        if not allow_list or sender_id is None:
            return True
        return str(sender_id) in allow_list

    async def _handle_update(self, update: InboundUpdate) -> None:
        """异步函数说明：_handle_update。"""
        if not self.is_allowed(update.origin.sender_id):
            logger.warning(
                f"Access denied for sender {update.origin.sender_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return

        await self.bus.publish_inbound(update)
