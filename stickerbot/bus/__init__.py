"""模块说明：__init__。"""

from stickerbot.bus.events import InboundUpdate, OutboundMessage, Origin, UpdateKind
from stickerbot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundUpdate", "OutboundMessage", "Origin", "UpdateKind"]
