"""贴纸机器人的命令 / 模式路由表。

具体功能（贴纸包管理、俱乐部、发布等）由外部提供的 FeatureHandlers 实现；
基类只记录日志。这里只负责把事件按固定顺序接到对应的功能上，
并在修改公共贴纸包的功能前挂上窄范围限流。
"""

import json
import re
from html import escape
from typing import Any, Callable

from loguru import logger

from stickerbot.bus.events import UpdateKind
from stickerbot.config.schema import Config
from stickerbot.dispatch.context import Context
from stickerbot.dispatch.router import NEXT, Router, optional
from stickerbot.i18n.translator import I18n
from stickerbot.ratelimit.limiter import RateLimiter, reply_rate_limited
from stickerbot.scenes.engine import Scene
from stickerbot.utils.helpers import truncate_string

NEW_PACK_SCENE = "new_pack"
ORIGINAL_STICKER_SCENE = "original_sticker"

EMOJI_RE = re.compile("[\u00a9\u00ae\u2000-\u3300\U0001F000-\U0001FBFF]")
SELECT_PACK_PAYLOAD_RE = re.compile(r"s_(.*)")


class FeatureHandlers:
    """功能处理器集合。

    嵌入方继承本类并覆盖需要的方法。未覆盖的方法只记录日志；
    publish 与 inline_query 默认返回 NEXT，让事件继续向后匹配。
    """

    async def _missing(self, name: str, ctx: Context) -> Any:
        logger.debug(f"Feature '{name}' not installed, ignoring {ctx.describe()}")
        return None

    async def start(self, ctx: Context) -> Any:
        return await self._missing("start", ctx)

    async def club(self, ctx: Context) -> Any:
        return await self._missing("club", ctx)

    async def packs(self, ctx: Context) -> Any:
        return await self._missing("packs", ctx)

    async def select_pack(self, ctx: Context) -> Any:
        return await self._missing("select_pack", ctx)

    async def hide_pack(self, ctx: Context) -> Any:
        return await self._missing("hide_pack", ctx)

    async def restore_pack(self, ctx: Context) -> Any:
        return await self._missing("restore_pack", ctx)

    async def copy_pack(self, ctx: Context) -> Any:
        return await self._missing("copy_pack", ctx)

    async def sticker(self, ctx: Context) -> Any:
        return await self._missing("sticker", ctx)

    async def delete_sticker(self, ctx: Context) -> Any:
        return await self._missing("delete_sticker", ctx)

    async def restore_sticker(self, ctx: Context) -> Any:
        return await self._missing("restore_sticker", ctx)

    async def emoji(self, ctx: Context) -> Any:
        return await self._missing("emoji", ctx)

    async def sticker_update(self, ctx: Context) -> Any:
        return await self._missing("sticker_update", ctx)

    async def publish(self, ctx: Context) -> Any:
        return NEXT

    async def inline_query(self, ctx: Context) -> Any:
        return NEXT

    async def language(self, ctx: Context) -> Any:
        """/lang 列出可选语言；set_language:<code> 回调切换会话语言。"""
        languages = ctx.i18n.languages if ctx.i18n else []

        if ctx.update.callback_data and ctx.match is not None:
            code = ctx.match.group(1)
            if code not in languages:
                logger.warning(f"Unknown language {code!r} requested by {ctx.origin.sender_id}")
                return None
            ctx.session.locale = code
            if ctx.batcher is not None:
                ctx.batcher.answer_callback_query(ctx.t("cmd.lang.changed"))
            return None

        keyboard = [[{"text": code, "callback_data": f"set_language:{code}"}] for code in languages]
        await ctx.reply(ctx.t("cmd.lang.choose"), reply_markup={"inline_keyboard": keyboard})
        return None

    def scenes(self) -> list[Scene]:
        """本功能集提供的场景（new_pack、original_sticker 等）。"""
        return []


def is_public_pack(scope_value: str = "public") -> Callable[[Context], bool]:
    """会话当前选中的贴纸包是否为公共包。"""
    def predicate(ctx: Context) -> bool:
        if ctx.session is None:
            return False
        sticker_set = ctx.session.sticker_set or {}
        return sticker_set.get("passcode") == scope_value
    return predicate


def _with_type(pack_type: str, handler: Callable[[Context], Any]) -> Callable[[Context], Any]:
    async def handle(ctx: Context) -> Any:
        ctx.state["type"] = pack_type
        return await handler(ctx)
    handle.__name__ = f"packs_{pack_type}"
    return handle


def build_router(
    features: FeatureHandlers,
    i18n: I18n,
    config: Config,
    public_pack_limiter: RateLimiter | None = None,
) -> Router:
    """按原有顺序组装路由表。"""
    router = Router()
    match = i18n.match

    limiter = public_pack_limiter if public_pack_limiter is not None else RateLimiter(
        config.rate_limits.public_pack,
        on_limit_exceeded=reply_rate_limited,
        name="public_pack",
    )
    limit_public_pack = optional(is_public_pack(config.rate_limits.public_scope_value), limiter)
    restore_bot_id = config.dispatcher.forward_restore_bot_id

    async def dump_json(ctx: Context) -> None:
        body = escape(truncate_string(json.dumps(ctx.update.payload, indent=2, ensure_ascii=False), 4000))
        await ctx.reply(f"<code>{body}</code>")

    async def start_inline_pack(ctx: Context) -> Any:
        if ctx.payload != "inline_pack":
            return NEXT
        ctx.state["type"] = "inline"
        return await features.packs(ctx)

    async def start_select_pack(ctx: Context) -> Any:
        m = SELECT_PACK_PAYLOAD_RE.search(ctx.payload)
        if m is None:
            return NEXT
        ctx.match = m
        return await features.select_pack(ctx)

    async def enter_new_pack(ctx: Context) -> None:
        await ctx.enter_scene(NEW_PACK_SCENE)

    async def enter_original_sticker(ctx: Context) -> None:
        await ctx.enter_scene(ORIGINAL_STICKER_SCENE)

    def help_text(key: str) -> Callable[[Context], Any]:
        # 带参数时（例如 /copy 链接）交给后面的模式路由
        async def handle(ctx: Context) -> Any:
            if ctx.payload:
                return NEXT
            await ctx.reply(ctx.t(key))
        handle.__name__ = key.replace(".", "_")
        return handle

    async def restore_forwarded(ctx: Context) -> Any:
        if ctx.update.forward_from_id != restore_bot_id:
            return NEXT
        return await features.restore_pack(ctx)

    async def any_message(ctx: Context) -> Any:
        # 编辑过的消息不重新触发菜单
        if ctx.update.kind is not UpdateKind.MESSAGE:
            return NEXT
        return await features.start(ctx)

    router.command("json", dump_json)
    router.command("start", start_inline_pack)
    router.hears(["/packs", match("cmd.start.btn.packs")], _with_type("common", features.packs))
    router.hears(["/inline", match("cmd.start.btn.inline")], _with_type("inline", features.packs))
    router.hears(["/anim", match("cmd.start.btn.anim")], _with_type("animated", features.packs))
    router.hears(["/video", match("cmd.start.btn.video")], _with_type("video", features.packs))
    router.command("start", start_select_pack)
    router.hears(["/new", match("cmd.start.btn.new")], enter_new_pack)
    router.action(re.compile(r"new_pack"), enter_new_pack)
    router.hears(["/club", "/start club", match("cmd.start.btn.club")], features.club)
    router.hears(re.compile(r"addstickers/(.*)"), features.copy_pack)
    router.command("public", features.select_pack)
    router.command("emoji", features.emoji)
    router.command("copy", help_text("cmd.copy"))
    router.command("restore", help_text("cmd.restore"))
    router.command("original", enter_original_sticker)
    router.command("lang", features.language)
    router.hears(EMOJI_RE, features.sticker_update)

    router.use(features.publish)
    router.on("inline_query", features.inline_query)

    router.on(["sticker", "document", "photo", "video"], features.sticker, limit_public_pack)

    router.action(re.compile(r"(set_pack):(.*)"), features.packs)
    router.action(re.compile(r"(hide_pack):(.*)"), features.hide_pack)
    router.action(re.compile(r"(delete_sticker):(.*)"), features.delete_sticker, limit_public_pack)
    router.action(re.compile(r"(restore_sticker):(.*)"), features.restore_sticker, limit_public_pack)
    router.action(re.compile(r"set_language:(.*)"), features.language)

    router.on("text", restore_forwarded)
    router.action(re.compile(r"(club):(.*)"), features.club)

    router.fallback(any_message)
    return router
