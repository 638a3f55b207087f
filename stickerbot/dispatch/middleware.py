"""分发管线的各个阶段。

每个阶段接收 (ctx, call_next)：可以执行前置逻辑、调用 call_next 进入下一阶段、
在下一阶段结束后执行后置逻辑，或者不调用 call_next 直接截断。
阶段顺序由 Dispatcher 显式声明。
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from stickerbot.bus.events import InboundUpdate, OutboundMessage, UpdateKind
from stickerbot.config.schema import SessionConfig
from stickerbot.dispatch.batcher import ResponseBatcher
from stickerbot.dispatch.context import AppContext, Context
from stickerbot.dispatch.errors import ErrorSink
from stickerbot.dispatch.router import Router
from stickerbot.i18n.translator import I18n
from stickerbot.ratelimit.limiter import RateLimiter
from stickerbot.scenes.engine import SceneEngine
from stickerbot.session.keys import resolve_session_key
from stickerbot.session.locks import KeyedLocks
from stickerbot.session.manager import Session, SessionStore

NextFn = Callable[[], Awaitable[None]]

MEMBER_UPDATE_KINDS = frozenset({UpdateKind.MY_CHAT_MEMBER, UpdateKind.CHAT_MEMBER})


class Middleware(ABC):
    """管线阶段基类。"""

    name: str = "middleware"

    @abstractmethod
    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        pass


class EventFilter(Middleware):
    """静默吸收机器人不处理的更新类型（频道消息、投票）。"""

    name = "event_filter"

    def __init__(self, ignored_kinds: Iterable[str]):
        self.ignored_kinds = frozenset(ignored_kinds)

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        if ctx.update.kind.value in self.ignored_kinds:
            logger.debug(f"Ignoring {ctx.update.kind.value} update #{ctx.update.update_id}")
            return
        await call_next()


class ErrorBoundary(Middleware):
    """最外层的错误隔离：之后各阶段的任何异常都交给 ErrorSink，不会影响其他事件。

    handler_timeout_s 是可选的看门狗，超时同样作为普通错误上报。
    """

    name = "error_boundary"

    def __init__(self, error_sink: ErrorSink, handler_timeout_s: float | None = None):
        self.error_sink = error_sink
        self.handler_timeout_s = handler_timeout_s

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        try:
            if self.handler_timeout_s:
                await asyncio.wait_for(call_next(), timeout=self.handler_timeout_s)
            else:
                await call_next()
        except Exception as e:
            ctx.error = e
            await self.error_sink.report(e, ctx)


class I18nMiddleware(Middleware):
    """挂载按事件绑定的翻译器；语言在调用时解析，会话加载后自动生效。"""

    name = "i18n"

    def __init__(self, i18n: I18n):
        self.i18n = i18n

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        ctx.i18n = self.i18n.bind(lambda: _locale_of(ctx))
        await call_next()


def _locale_of(ctx: Context) -> str | None:
    if ctx.session is not None and ctx.session.locale:
        return ctx.session.locale
    return ctx.update.origin.language_code


class RateLimitMiddleware(Middleware):
    """全局按用户限流；被拒绝的事件不再向下传递。"""

    name = "rate_limit"

    def __init__(self, limiter: RateLimiter):
        self.limiter = limiter

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        if await self.limiter.check(ctx):
            await call_next()


class StatsMiddleware(Middleware):
    """按类型计数并记录处理耗时。"""

    name = "stats"

    def __init__(self):
        self.counts: Counter[str] = Counter()
        self.total_ms = 0.0

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        started = time.perf_counter()
        self.counts[ctx.update.kind.value] += 1
        try:
            await call_next()
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.total_ms += elapsed_ms
            logger.debug(f"Response time {elapsed_ms:.1f}ms for {ctx.describe()}")

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def snapshot(self, app: AppContext) -> dict[str, Any]:
        """函数说明：snapshot。"""
        return {
            "uptime_s": round(app.uptime_s, 1),
            "updates": self.total,
            "by_kind": dict(self.counts),
            "avg_ms": round(self.total_ms / self.total, 2) if self.total else 0.0,
        }


class MemberUpdateFilter(Middleware):
    """机器人或成员的入群/退群状态变化不进入处理器。"""

    name = "member_filter"

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        if ctx.update.kind in MEMBER_UPDATE_KINDS:
            logger.debug(f"Absorbed {ctx.update.kind.value} for chat {ctx.chat_id}")
            return
        await call_next()


def refresh_profile(session: Session, update: InboundUpdate) -> None:
    """私聊与内联查询时用来源信息刷新会话中的用户资料。"""
    if not (update.is_private or update.kind is UpdateKind.INLINE_QUERY):
        return
    o = update.origin
    profile = {
        "id": o.sender_id,
        "username": o.username,
        "first_name": o.first_name,
        "language_code": o.language_code,
    }
    session.user.update({k: v for k, v in profile.items() if v is not None})


async def _check_in(ctx: Context, store: SessionStore, error_sink: ErrorSink) -> None:
    """保存会话，每个事件最多一次；失败只上报，不重试。"""
    if ctx.session is None or ctx.session_saved:
        return
    ctx.session_saved = True
    try:
        await store.save(ctx.session_key, ctx.session)
    except Exception as e:
        await error_sink.report(e, ctx, notify=False)


class SessionMiddleware(Middleware):
    """借出会话：解析会话键、获取该键的锁并加载会话。

    无法解析会话键时截断，之后所有依赖会话的阶段都不执行。
    锁覆盖 加载→处理→保存 的全过程，同一键的事件因此串行。
    正常情况下由 SessionSaveMiddleware 保存；若它没有被执行到，这里补存。
    """

    name = "session"

    def __init__(self, store: SessionStore, locks: KeyedLocks, error_sink: ErrorSink, key_format: SessionConfig):
        self.store = store
        self.locks = locks
        self.error_sink = error_sink
        self.key_format = key_format

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        key = resolve_session_key(ctx.update.origin, self.key_format)
        if key is None:
            logger.debug(f"No session key for {ctx.describe()}, skipping")
            return

        async with self.locks.hold(key):
            ctx.session_key = key
            ctx.session = await self.store.load(key)
            try:
                refresh_profile(ctx.session, ctx.update)
                await call_next()
            finally:
                await _check_in(ctx, self.store, self.error_sink)


class SessionSaveMiddleware(Middleware):
    """归还会话：在场景与路由结束后保存，无论它们是否出错。"""

    name = "session_save"

    def __init__(self, store: SessionStore, error_sink: ErrorSink):
        self.store = store
        self.error_sink = error_sink

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        try:
            await call_next()
        finally:
            await _check_in(ctx, self.store, self.error_sink)


class ResponseBatchMiddleware(Middleware):
    """为需要延迟应答的事件创建 ResponseBatcher，并在链路结束后发送一次。"""

    name = "response_batch"

    def __init__(self, publish: Callable[[OutboundMessage], Awaitable[None]], error_sink: ErrorSink):
        self.publish = publish
        self.error_sink = error_sink

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        if not ResponseBatcher.requires_ack(ctx.update):
            await call_next()
            return

        ctx.batcher = ResponseBatcher(ctx.update)
        try:
            await call_next()
        finally:
            try:
                await ctx.batcher.flush(self.publish)
            except Exception as e:
                await self.error_sink.report(e, ctx, notify=False)


class SceneMiddleware(Middleware):
    """退出命令优先；有活动场景时交给当前步骤并跳过路由。

    退出命令离开场景时回复 scene.leave，再照常路由（/start 仍会显示菜单）。
    直通命令（/json）不触碰场景状态，直接交给路由。
    """

    name = "scenes"

    def __init__(self, engine: SceneEngine):
        self.engine = engine

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        session = ctx.session
        if session is not None and self.engine.is_escape(ctx.update):
            if session.scene is not None:
                self.engine.leave(session)
                if ctx.chat_id is not None:
                    await ctx.reply(ctx.t("scene.leave"))
            await call_next()
            return

        if self.engine.is_passthrough(ctx.update):
            await call_next()
            return

        if await self.engine.handle(ctx):
            return
        await call_next()


class RouterMiddleware(Middleware):
    """命令 / 模式路由，管线的最后一个阶段。"""

    name = "router"

    def __init__(self, router: Router):
        self.router = router

    async def __call__(self, ctx: Context, call_next: NextFn) -> None:
        if not await self.router.route(ctx):
            logger.debug(f"No route for {ctx.describe()}")
        await call_next()
