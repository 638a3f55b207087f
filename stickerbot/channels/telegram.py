"""Telegram 渠道（python-telegram-bot）。

收到的每个 Update 转成 InboundUpdate 发布到总线，不在这里等待处理结果；
出站调用按 method 分别执行。
"""

import asyncio
from typing import Any

from loguru import logger
from telegram import InlineKeyboardMarkup, ReplyKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import Application, ContextTypes, TypeHandler

from stickerbot.bus.events import InboundUpdate, OutboundMessage, Origin, UpdateKind
from stickerbot.bus.queue import MessageBus
from stickerbot.channels.base import BaseChannel
from stickerbot.config.schema import TelegramConfig


def parse_update(data: dict[str, Any]) -> InboundUpdate:
    """把 Telegram 原始 update 字典转换为 InboundUpdate。"""
    kind = UpdateKind.UNKNOWN
    payload: dict[str, Any] = {}
    for candidate in UpdateKind:
        if candidate is not UpdateKind.UNKNOWN and candidate.value in data:
            kind = candidate
            payload = data[candidate.value] or {}
            break

    # poll_answer 的发送者字段叫 user
    sender = payload.get("from") or payload.get("user") or {}
    chat = payload.get("chat") or (payload.get("message") or {}).get("chat") or {}

    origin = Origin(
        sender_id=sender.get("id"),
        chat_id=chat.get("id"),
        chat_type=chat.get("type"),
        username=sender.get("username"),
        first_name=sender.get("first_name"),
        language_code=sender.get("language_code"),
    )
    return InboundUpdate(
        kind=kind,
        origin=origin,
        payload=payload,
        channel="telegram",
        update_id=data.get("update_id"),
    )


def _reply_markup(markup: Any) -> Any:
    if not isinstance(markup, dict):
        return markup
    if "inline_keyboard" in markup:
        return InlineKeyboardMarkup.de_json(markup, None)
    if "keyboard" in markup:
        return ReplyKeyboardMarkup.de_json(markup, None)
    return markup


class TelegramChannel(BaseChannel):
    """类说明：TelegramChannel。"""

    name = "telegram"

    def __init__(self, config: TelegramConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: TelegramConfig = config
        self._app: Application | None = None
        self.bot_username: str | None = None

    async def connect(self) -> str | None:
        """初始化 Application 并通过 get_me 取得机器人用户名；未配置 token 时返回 None。"""
        if self._app is not None:
            return self.bot_username
        if not self.config.token:
            logger.error("Telegram bot token not configured")
            return None

        builder = Application.builder().token(self.config.token)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()

        # 所有类型的更新都交给分发管线，过滤在管线内完成
        self._app.add_handler(TypeHandler(Update, self._on_update))

        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        self.bot_username = bot_info.username
        logger.info(f"Telegram bot @{bot_info.username} connected")
        return self.bot_username

    async def start(self) -> None:
        """异步函数说明：start。"""
        if self._app is None:
            await self.connect()
        if self._app is None:
            return

        self._running = True

        if self.config.webhook_domain:
            await self._app.updater.start_webhook(
                listen="0.0.0.0",
                port=self.config.webhook_port,
                url_path=self.config.webhook_path.lstrip("/"),
                webhook_url=f"https://{self.config.webhook_domain}{self.config.webhook_path}",
                allowed_updates=Update.ALL_TYPES,
                drop_pending_updates=self.config.drop_pending_updates,
            )
            logger.info(f"Telegram webhook listening on port {self.config.webhook_port}")
        else:
            await self._app.updater.start_polling(
                allowed_updates=Update.ALL_TYPES,
                drop_pending_updates=self.config.drop_pending_updates,
            )
            logger.info("Telegram bot started (polling mode)")

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """异步函数说明：stop。"""
        self._running = False

        if self._app:
            logger.info("Stopping Telegram bot...")
            if self._app.updater.running:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send(self, msg: OutboundMessage) -> None:
        """执行一次出站调用；失败只记录日志。"""
        if not self._app:
            logger.warning("Telegram bot not running")
            return

        bot = self._app.bot
        params = dict(msg.params)
        try:
            if msg.method == "answer_inline_query":
                await bot.answer_inline_query(
                    params.pop("inline_query_id"),
                    params.pop("results", []),
                    **params,
                )
            elif msg.method == "answer_callback_query":
                await bot.answer_callback_query(params.pop("callback_query_id"), **params)
            elif msg.method == "send_message":
                await self._send_message(msg, params)
            else:
                logger.error(f"Unsupported outbound method: {msg.method}")
        except Exception as e:
            logger.error(f"Error executing {msg.method} on Telegram: {e}")

    async def _send_message(self, msg: OutboundMessage, params: dict[str, Any]) -> None:
        if "reply_markup" in params:
            params["reply_markup"] = _reply_markup(params["reply_markup"])
        if msg.reply_to is not None:
            params.setdefault("reply_to_message_id", msg.reply_to)

        try:
            await self._app.bot.send_message(chat_id=int(msg.chat_id), text=msg.content, **params)
        except BadRequest as e:
            if params.get("parse_mode") != "HTML":
                raise
            # HTML 解析失败时退回纯文本
            logger.warning(f"HTML parse failed, falling back to plain text: {e}")
            params.pop("parse_mode")
            await self._app.bot.send_message(chat_id=int(msg.chat_id), text=msg.content, **params)

    async def _on_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """异步函数说明：_on_update。"""
        inbound = parse_update(update.to_dict())
        logger.debug(f"Telegram {inbound.kind.value} #{inbound.update_id} from {inbound.origin.sender_id}")
        await self._handle_update(inbound)
