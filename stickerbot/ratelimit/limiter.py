"""滑动窗口限流。

每个作用域键保存窗口内已放行请求的时间戳。窗口内放行数未达上限时
放行并记录当前时间；否则拒绝且不记录，被拒绝的请求不消耗额度。
检查与记录之间没有 await，并在线程锁内完成，因此是原子的。
"""

import threading
from collections import deque
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from stickerbot.config.schema import RateLimitConfig
from stickerbot.utils.helpers import monotonic_ms

if TYPE_CHECKING:
    from stickerbot.dispatch.context import Context

KeyFunc = Callable[["Context"], str | None]
LimitCallback = Callable[["Context"], Awaitable[None]]

_SWEEP_EVERY = 1000  # 每放行/拒绝这么多次清理一次过期键


def sender_key(ctx: "Context") -> str | None:
    """默认作用域：发送者 ID；没有发送者时不限流。"""
    sender_id = ctx.update.origin.sender_id
    return str(sender_id) if sender_id is not None else None


async def reply_rate_limited(ctx: "Context") -> None:
    """默认的超限提示：向会话回复本地化的 ratelimit 文本。"""
    if ctx.chat_id is None:
        logger.debug(f"Rate limit notice skipped, no chat: {ctx.describe()}")
        return
    await ctx.reply(ctx.t("ratelimit"))


class RateLimiter:
    """类说明：RateLimiter。"""

    def __init__(
        self,
        config: RateLimitConfig,
        on_limit_exceeded: LimitCallback | None = None,
        *,
        key: KeyFunc = sender_key,
        clock: Callable[[], float] = monotonic_ms,
        name: str = "ratelimit",
    ):
        self.config = config
        self.on_limit_exceeded = on_limit_exceeded
        self.key = key
        self.clock = clock
        self.name = name
        self._windows: dict[str, deque[float]] = {}
        self._notified_at: dict[str, float] = {}
        self._lock = threading.Lock()
        self._calls = 0

    def admit(self, scope_key: str, limit: int | None = None, window_ms: int | None = None) -> bool:
        """窗口内放行数低于 limit 时放行并记录，否则拒绝（不记录）。"""
        limit = limit if limit is not None else self.config.limit
        window_ms = window_ms if window_ms is not None else self.config.window_ms
        now = self.clock()

        with self._lock:
            self._calls += 1
            if self._calls % _SWEEP_EVERY == 0:
                self._sweep(now, window_ms)

            window = self._windows.get(scope_key)
            if window is None:
                window = deque()
            _prune(window, now, window_ms)

            if len(window) >= limit:
                self._windows[scope_key] = window
                return False

            window.append(now)
            self._windows[scope_key] = window
            return True

    async def check(self, ctx: "Context") -> bool:
        """中间件 / 路由守卫入口：放行返回 True，拒绝时发出节流后的提示。"""
        scope_key = self.key(ctx)
        if scope_key is None:
            return True
        if self.admit(scope_key):
            return True

        logger.info(f"Rate limit '{self.name}' exceeded for {scope_key}")
        if self.on_limit_exceeded is not None and self._should_notify(scope_key):
            await self.on_limit_exceeded(ctx)
        return False

    __call__ = check

    def _should_notify(self, scope_key: str) -> bool:
        """同一窗口内对同一作用域只提示一次。"""
        now = self.clock()
        with self._lock:
            last = self._notified_at.get(scope_key)
            if last is not None and now - last < self.config.window_ms:
                return False
            self._notified_at[scope_key] = now
            return True

    def _sweep(self, now: float, window_ms: int) -> None:
        for scope_key in list(self._windows):
            window = self._windows[scope_key]
            _prune(window, now, window_ms)
            if not window:
                del self._windows[scope_key]
        for scope_key, at in list(self._notified_at.items()):
            if now - at >= window_ms:
                del self._notified_at[scope_key]

    def pending(self, scope_key: str) -> int:
        """当前窗口内已放行的次数。"""
        with self._lock:
            window = self._windows.get(scope_key)
            if not window:
                return 0
            _prune(window, self.clock(), self.config.window_ms)
            return len(window)

    def reset(self, scope_key: str | None = None) -> None:
        """函数说明：reset。"""
        with self._lock:
            if scope_key is None:
                self._windows.clear()
                self._notified_at.clear()
            else:
                self._windows.pop(scope_key, None)
                self._notified_at.pop(scope_key, None)

    def __len__(self) -> int:
        return len(self._windows)


def _prune(window: deque[float], now: float, window_ms: int) -> None:
    while window and now - window[0] >= window_ms:
        window.popleft()
