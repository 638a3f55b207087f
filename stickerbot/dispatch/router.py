"""命令 / 模式路由。

路由表按声明顺序排列，分两层查找：先精确命令，再按顺序匹配文本、
正则、事件类型与谓词，最后是兜底处理器。第一个匹配的路由获胜；
处理器返回 NEXT 时继续向后查找。路由可以带守卫（例如公共包限流），
守卫拒绝时本事件的路由到此结束。
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from stickerbot.dispatch.context import Context

Handler = Callable[[Context], Awaitable[Any]]
Guard = Callable[[Context], Awaitable[bool]]
TextTrigger = str | Callable[[str], bool]

_COMMAND_RE = re.compile(r"^/([A-Za-z0-9_]+)(?:@([A-Za-z0-9_]+))?(?:\s+(.*))?$", re.DOTALL)


class _Next:
    def __repr__(self) -> str:
        return "NEXT"


NEXT = _Next()


def parse_command(text: str | None) -> tuple[str, str | None, str] | None:
    """"/start@bot payload" -> ("start", "bot", "payload")；不是命令时返回 None。"""
    if not text:
        return None
    m = _COMMAND_RE.match(text.strip())
    if not m:
        return None
    return m.group(1), m.group(2), (m.group(3) or "").strip()


class Matcher(ABC):
    """路由匹配器；tier 0 为精确命令，tier 1 为按序匹配的其余类型。"""

    tier: int = 1

    @abstractmethod
    def match(self, ctx: Context) -> bool:
        """匹配成功时可在 ctx 上写入 match / command / payload。"""
        pass


class Command(Matcher):
    """精确命令，如 /start 或 /start@BotName。"""

    tier = 0

    def __init__(self, *names: str):
        self.names = frozenset(n.lstrip("/") for n in names)

    def match(self, ctx: Context) -> bool:
        parsed = parse_command(ctx.update.text)
        if parsed is None:
            return False
        name, mention, payload = parsed
        if name not in self.names:
            return False
        bot_username = ctx.app.bot_username
        if mention and bot_username and mention.lower() != bot_username.lower():
            return False
        ctx.command, ctx.payload = name, payload
        return True

    def __repr__(self) -> str:
        return f"Command({', '.join(sorted(self.names))})"


class Text(Matcher):
    """消息文本与任一触发项完全相等；触发项也可以是判断函数。"""

    def __init__(self, *triggers: TextTrigger):
        self.triggers = triggers

    def match(self, ctx: Context) -> bool:
        text = ctx.update.text
        if text is None:
            return False
        for trigger in self.triggers:
            if callable(trigger):
                if trigger(text):
                    return True
            elif trigger == text:
                return True
        return False

    def __repr__(self) -> str:
        return f"Text({', '.join(getattr(t, '__name__', repr(t)) for t in self.triggers)})"


class Pattern(Matcher):
    """对消息文本或回调数据做正则搜索，结果存入 ctx.match。"""

    def __init__(self, pattern: str | re.Pattern, source: str = "text"):
        if source not in ("text", "callback_data"):
            raise ValueError(f"Unknown pattern source: {source}")
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.source = source

    def match(self, ctx: Context) -> bool:
        value = ctx.update.text if self.source == "text" else ctx.update.callback_data
        if value is None:
            return False
        m = self.pattern.search(value)
        if m is None:
            return False
        ctx.match = m
        return True

    def __repr__(self) -> str:
        return f"Pattern({self.pattern.pattern!r}, {self.source})"


class Kind(Matcher):
    """按更新类型（message、inline_query…）或消息内容类型（sticker、photo…）匹配。"""

    def __init__(self, *kinds: str):
        self.kinds = frozenset(kinds)

    def match(self, ctx: Context) -> bool:
        update = ctx.update
        if update.kind.value in self.kinds:
            return True
        return any(t in self.kinds for t in update.content_types)

    def __repr__(self) -> str:
        return f"Kind({', '.join(sorted(self.kinds))})"


class Predicate(Matcher):
    """任意同步判断函数。"""

    def __init__(self, fn: Callable[[Context], bool]):
        self.fn = fn

    def match(self, ctx: Context) -> bool:
        return bool(self.fn(ctx))

    def __repr__(self) -> str:
        return f"Predicate({getattr(self.fn, '__name__', 'fn')})"


def _always(ctx: Context) -> bool:
    return True


def optional(predicate: Callable[[Context], bool], guard: Guard) -> Guard:
    """只有 predicate 成立时才执行 guard，否则直接放行。"""
    async def conditional_guard(ctx: Context) -> bool:
        if not predicate(ctx):
            return True
        return await guard(ctx)
    return conditional_guard


@dataclass
class Route:
    """类说明：Route。"""
    matcher: Matcher
    handler: Handler
    guards: tuple[Guard, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        return getattr(self.handler, "__name__", repr(self.handler))


class Router:
    """有序路由表。"""

    def __init__(self):
        self._routes: list[Route] = []
        self._fallback: Route | None = None

    def add(self, matcher: Matcher, handler: Handler, *guards: Guard) -> Route:
        """追加一条路由。"""
        route = Route(matcher=matcher, handler=handler, guards=guards)
        self._routes.append(route)
        return route

    def command(self, names: str | Iterable[str], handler: Handler, *guards: Guard) -> Route:
        names = [names] if isinstance(names, str) else list(names)
        return self.add(Command(*names), handler, *guards)

    def hears(
        self,
        triggers: TextTrigger | re.Pattern | list[TextTrigger],
        handler: Handler,
        *guards: Guard,
    ) -> Route:
        """正则走 Pattern，字符串或判断函数走 Text。"""
        if isinstance(triggers, re.Pattern):
            return self.add(Pattern(triggers), handler, *guards)
        if not isinstance(triggers, list):
            triggers = [triggers]
        return self.add(Text(*triggers), handler, *guards)

    def action(self, pattern: str | re.Pattern, handler: Handler, *guards: Guard) -> Route:
        """回调按钮数据。"""
        return self.add(Pattern(pattern, source="callback_data"), handler, *guards)

    def on(self, kinds: str | Iterable[str], handler: Handler, *guards: Guard) -> Route:
        kinds = [kinds] if isinstance(kinds, str) else list(kinds)
        return self.add(Kind(*kinds), handler, *guards)

    def use(self, handler: Handler, *guards: Guard) -> Route:
        """对每个事件都尝试的处理器，不适用时应返回 NEXT。"""
        return self.add(Predicate(_always), handler, *guards)

    def fallback(self, handler: Handler) -> None:
        self._fallback = Route(matcher=Predicate(_always), handler=handler)

    @property
    def routes(self) -> list[Route]:
        """实际查找顺序：命令层在前，其余按声明顺序，兜底最后。"""
        ordered = [r for r in self._routes if r.matcher.tier == 0]
        ordered += [r for r in self._routes if r.matcher.tier != 0]
        if self._fallback is not None:
            ordered.append(self._fallback)
        return ordered

    async def route(self, ctx: Context) -> bool:
        """把事件交给第一个匹配的处理器；返回是否有路由处理了它。"""
        for route in self.routes:
            if not route.matcher.match(ctx):
                continue

            for guard in route.guards:
                if not await guard(ctx):
                    logger.debug(f"Route {route.name} rejected by guard for {ctx.describe()}")
                    return True

            result = await route.handler(ctx)
            if result is NEXT:
                continue
            logger.debug(f"Routed {ctx.update.kind.value} to {route.name} via {route.matcher!r}")
            return True

        return False

    def __len__(self) -> int:
        return len(self._routes) + (1 if self._fallback else 0)
