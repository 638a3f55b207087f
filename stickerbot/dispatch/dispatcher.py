"""Dispatcher：把各阶段按固定顺序组装成管线。

顺序（后面的阶段依赖前面阶段的副作用，不能调整）：
 1. event_filter    吸收不处理的更新类型
 2. error_boundary  错误隔离，包住之后的全部阶段
 3. i18n            挂载翻译器
 4. rate_limit      全局按用户限流
 5. stats           计数与耗时
 6. member_filter   吸收成员变化更新
 7. session         借出会话（无会话键则到此为止）
 8. response_batch  延迟应答的创建与发送
 9. session_save    归还会话
10. scenes          场景步骤
11. router          命令 / 模式路由

每个事件在独立的任务中处理，同一会话键的事件由 KeyedLocks 串行。
"""

import asyncio

from loguru import logger

from stickerbot.bus.events import InboundUpdate
from stickerbot.bus.queue import MessageBus
from stickerbot.config.schema import Config
from stickerbot.dispatch.context import AppContext, Context
from stickerbot.dispatch.errors import ErrorSink
from stickerbot.dispatch.middleware import (
    ErrorBoundary,
    EventFilter,
    I18nMiddleware,
    MemberUpdateFilter,
    Middleware,
    RateLimitMiddleware,
    ResponseBatchMiddleware,
    RouterMiddleware,
    SceneMiddleware,
    SessionMiddleware,
    SessionSaveMiddleware,
    StatsMiddleware,
)
from stickerbot.dispatch.router import Router
from stickerbot.i18n.translator import I18n
from stickerbot.ratelimit.limiter import RateLimiter, reply_rate_limited
from stickerbot.scenes.engine import SceneEngine
from stickerbot.session.locks import KeyedLocks
from stickerbot.session.manager import SessionStore


class Dispatcher:
    """入站更新的分发器。"""

    def __init__(
        self,
        config: Config,
        bus: MessageBus,
        store: SessionStore,
        router: Router,
        i18n: I18n,
        scenes: SceneEngine | None = None,
        app: AppContext | None = None,
        error_sink: ErrorSink | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.config = config
        self.bus = bus
        self.store = store
        self.router = router
        self.i18n = i18n
        self.scenes = scenes if scenes is not None else SceneEngine(
            escape_commands=config.dispatcher.escape_commands,
            passthrough_commands=config.dispatcher.scene_passthrough_commands,
        )
        self.app = app if app is not None else AppContext()
        self.error_sink = error_sink if error_sink is not None else ErrorSink()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(
            config.rate_limits.per_user,
            on_limit_exceeded=reply_rate_limited,
            name="per_user",
        )
        self.locks = KeyedLocks()
        self.stats = StatsMiddleware()

        self.stages: list[Middleware] = [
            EventFilter(config.dispatcher.ignored_kinds),
            ErrorBoundary(self.error_sink, config.dispatcher.handler_timeout_s),
            I18nMiddleware(i18n),
            RateLimitMiddleware(self.rate_limiter),
            self.stats,
            MemberUpdateFilter(),
            SessionMiddleware(store, self.locks, self.error_sink, config.session),
            ResponseBatchMiddleware(bus.publish_outbound, self.error_sink),
            SessionSaveMiddleware(store, self.error_sink),
            SceneMiddleware(self.scenes),
            RouterMiddleware(router),
        ]

        self._tasks: set[asyncio.Task] = set()
        self._running = False

    async def dispatch(self, update: InboundUpdate) -> Context:
        """处理单个事件并返回它的上下文；不会向调用方抛出异常。"""
        ctx = Context(update, bus=self.bus, app=self.app, scenes=self.scenes)
        try:
            await self._run(ctx, 0)
        except Exception as e:
            # 只有错误边界之外的阶段会走到这里，视为编程错误，仅影响本事件
            ctx.error = e
            logger.opt(exception=e).error(f"Unhandled error outside error boundary: {ctx.describe()}")
        return ctx

    async def _run(self, ctx: Context, index: int) -> None:
        if index >= len(self.stages):
            return
        stage = self.stages[index]
        ctx.trace.append(stage.name)
        await stage(ctx, lambda: self._run(ctx, index + 1))

    def submit(self, update: InboundUpdate) -> asyncio.Task:
        """立即返回，事件在后台任务中处理。"""
        task = asyncio.create_task(self.dispatch(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self) -> None:
        """持续消费总线上的入站更新。"""
        self._running = True
        logger.info("Dispatcher started")

        while self._running:
            try:
                update = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            self.submit(update)

    def stop(self) -> None:
        """函数说明：stop。"""
        self._running = False
        logger.info("Dispatcher stopping")

    async def shutdown(self) -> None:
        """停止接收并等待进行中的事件处理完成。"""
        self.stop()
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight update(s)")
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info(f"Dispatcher stats: {self.stats.snapshot(self.app)}")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)
