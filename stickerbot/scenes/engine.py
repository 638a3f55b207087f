"""多步骤场景状态机。

会话没有活动场景时为空闲状态，事件走普通路由。进入场景后，
事件交给当前步骤处理；步骤返回 stay / advance / leave 之一。
步骤只在新事件到达时被调用，同一事件内不会递归执行下一个步骤。
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from stickerbot.bus.events import InboundUpdate
from stickerbot.dispatch.context import Context
from stickerbot.dispatch.router import parse_command
from stickerbot.errors import SceneNotFoundError, SceneStateError
from stickerbot.session.manager import SceneState, Session


@dataclass(frozen=True)
class StepResult:
    """类说明：StepResult。"""
    action: str  # stay / advance / leave
    step: str | None = None
    data: dict[str, Any] | None = None


def stay() -> StepResult:
    return StepResult("stay")


def advance(step: str, data: dict[str, Any] | None = None) -> StepResult:
    """进入下一步；给出 data 时替换场景局部数据。"""
    return StepResult("advance", step=step, data=data)


def leave() -> StepResult:
    return StepResult("leave")


StepHandler = Callable[[Context, dict[str, Any]], Awaitable[StepResult]]


@dataclass
class Step:
    """类说明：Step。"""
    name: str
    handler: StepHandler


@dataclass
class Scene:
    """有序步骤组成的引导流程；on_enter 在进入时执行一次（通常发送提示）。"""

    id: str
    steps: list[Step] = field(default_factory=list)
    on_enter: Callable[[Context], Awaitable[None]] | None = None

    def __post_init__(self):
        if not self.steps:
            raise ValueError(f"Scene {self.id} has no steps")
        names = [s.name for s in self.steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Scene {self.id} has duplicate step names")

    @property
    def first_step(self) -> Step:
        return self.steps[0]

    def get_step(self, name: str | None) -> Step | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


class SceneEngine:
    """场景注册表与状态迁移。"""

    def __init__(
        self,
        scenes: Iterable[Scene] = (),
        escape_commands: Iterable[str] = ("cancel", "start"),
        passthrough_commands: Iterable[str] = ("json",),
    ):
        self._scenes: dict[str, Scene] = {}
        self.escape_commands = frozenset(c.lstrip("/") for c in escape_commands)
        self.passthrough_commands = frozenset(c.lstrip("/") for c in passthrough_commands)
        for scene in scenes:
            self.register(scene)

    def register(self, scene: Scene) -> Scene:
        """函数说明：register。"""
        if scene.id in self._scenes:
            raise ValueError(f"Scene already registered: {scene.id}")
        self._scenes[scene.id] = scene
        return scene

    def get(self, scene_id: str) -> Scene | None:
        return self._scenes.get(scene_id)

    def __contains__(self, scene_id: str) -> bool:
        return scene_id in self._scenes

    async def enter(self, ctx: Context, scene_id: str, data: dict[str, Any] | None = None) -> None:
        """把会话置于场景的第一步，然后执行 on_enter。"""
        scene = self._scenes.get(scene_id)
        if scene is None:
            raise SceneNotFoundError(scene_id)
        if ctx.session is None:
            raise SceneStateError(f"Cannot enter scene {scene_id} without a session")

        ctx.session.scene = SceneState(scene_id=scene_id, step=scene.first_step.name, data=dict(data or {}))
        logger.debug(f"Session {ctx.session.key} entered scene {scene_id}")
        if scene.on_enter is not None:
            await scene.on_enter(ctx)

    def leave(self, session: Session) -> None:
        """函数说明：leave。"""
        if session.scene is not None:
            logger.debug(f"Session {session.key} left scene {session.scene.scene_id}")
        session.scene = None

    def is_escape(self, update: InboundUpdate) -> bool:
        """全局退出命令：无论场景状态如何都优先检查。"""
        return _command_name(update) in self.escape_commands

    def is_passthrough(self, update: InboundUpdate) -> bool:
        """在场景中也直接交给路由、且不改变场景状态的命令（如 /json）。"""
        return _command_name(update) in self.passthrough_commands

    async def handle(self, ctx: Context) -> bool:
        """有活动场景时把事件交给当前步骤；返回事件是否已被场景消费。"""
        session = ctx.session
        if session is None or session.scene is None:
            return False

        state = session.scene
        scene = self._scenes.get(state.scene_id)
        if scene is None:
            # 场景定义被移除（例如升级后），回到空闲状态并走普通路由
            logger.warning(f"Session {session.key} was in unknown scene {state.scene_id}, resetting")
            self.leave(session)
            return False

        step = scene.get_step(state.step)
        if step is None:
            self.leave(session)
            raise SceneStateError(f"Scene {scene.id} has no step {state.step!r}")

        result = await step.handler(ctx, state.data)
        self._apply(session, scene, state, result)
        return True

    def _apply(self, session: Session, scene: Scene, state: SceneState, result: Any) -> None:
        if not isinstance(result, StepResult):
            self.leave(session)
            raise SceneStateError(f"Step {scene.id}.{state.step} returned {result!r}, expected a StepResult")

        if session.scene is not state:
            # 步骤处理器自己进入了别的场景或已离开，以它为准
            return

        if result.action == "stay":
            return
        if result.action == "leave":
            self.leave(session)
            return
        if result.action == "advance":
            if scene.get_step(result.step) is None:
                self.leave(session)
                raise SceneStateError(f"Scene {scene.id} has no step {result.step!r}")
            state.step = result.step
            if result.data is not None:
                state.data = dict(result.data)
            return

        self.leave(session)
        raise SceneStateError(f"Unknown step action {result.action!r} in scene {scene.id}")


def _command_name(update: InboundUpdate) -> str | None:
    parsed = parse_command(update.text)
    return parsed[0] if parsed is not None else None
