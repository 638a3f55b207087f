"""单个事件的处理上下文。"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from stickerbot.bus.events import InboundUpdate, OutboundMessage
from stickerbot.bus.queue import MessageBus
from stickerbot.errors import HandlerError
from stickerbot.session.manager import Session

if TYPE_CHECKING:
    from stickerbot.dispatch.batcher import ResponseBatcher
    from stickerbot.i18n.translator import BoundTranslator
    from stickerbot.scenes.engine import SceneEngine


@dataclass(frozen=True)
class AppContext:
    """进程级只读上下文，启动时创建一次。"""

    started_at: datetime = field(default_factory=datetime.now)
    bot_username: str | None = None

    @property
    def uptime_s(self) -> float:
        return (datetime.now() - self.started_at).total_seconds()


class Context:
    """传给中间件与功能处理器的上下文。

    由 Dispatcher 为每个事件新建，各阶段依次填充：
    i18n → session → batcher → match/command。
    """

    def __init__(
        self,
        update: InboundUpdate,
        bus: MessageBus,
        app: AppContext | None = None,
        scenes: "SceneEngine | None" = None,
    ):
        self.update = update
        self.bus = bus
        self.app = app if app is not None else AppContext()
        self.scenes = scenes

        self.i18n: "BoundTranslator | None" = None
        self.session_key: str | None = None
        self.session: Session | None = None
        self.session_saved = False
        self.batcher: "ResponseBatcher | None" = None

        self.state: dict[str, Any] = {}  # 处理器之间传递的临时数据
        self.match: re.Match | None = None
        self.command: str | None = None
        self.payload: str = ""  # 命令后面的参数，/start 时即 start payload

        self.trace: list[str] = []  # 已进入的阶段名
        self.error: BaseException | None = None
        self.error_notified = False

    @property
    def origin(self):
        return self.update.origin

    @property
    def chat_id(self) -> int | None:
        return self.update.origin.chat_id

    def t(self, key: str, **params: Any) -> str:
        """按当前语言翻译；本地化阶段之前调用时返回键本身。"""
        if self.i18n is None:
            return key
        return self.i18n.t(key, **params)

    async def reply(self, text: str, **params: Any) -> None:
        """向事件所在会话发送一条消息。"""
        if self.chat_id is None:
            raise HandlerError(f"Cannot reply to {self.update.kind.value} without a chat")
        params.setdefault("parse_mode", "HTML")
        await self.bus.publish_outbound(OutboundMessage(
            channel=self.update.channel,
            chat_id=self.chat_id,
            content=text,
            params=params,
        ))

    async def enter_scene(self, scene_id: str, data: dict[str, Any] | None = None) -> None:
        if self.scenes is None:
            raise HandlerError("Scenes are not configured")
        await self.scenes.enter(self, scene_id, data)

    def leave_scene(self) -> None:
        if self.scenes is not None and self.session is not None:
            self.scenes.leave(self.session)

    def describe(self) -> str:
        """日志用的简短描述。"""
        o = self.update.origin
        return (
            f"{self.update.kind.value} #{self.update.update_id} "
            f"from {o.sender_id} in {o.chat_id} key={self.session_key}"
        )
