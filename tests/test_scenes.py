"""场景状态机。"""

import pytest

from stickerbot.dispatch.context import Context
from stickerbot.errors import SceneNotFoundError, SceneStateError
from stickerbot.scenes.engine import Scene, SceneEngine, Step, advance, leave, stay
from stickerbot.session.manager import SceneState, Session

from helpers import message


def make_ctx(bus, engine, text="hello", session=None):
    ctx = Context(message(text), bus, scenes=engine)
    ctx.session = session or Session(key="user:1")
    ctx.session_key = ctx.session.key
    return ctx


def new_pack_scene(seen):
    async def ask_title(ctx, data):
        seen.append(("title", ctx.update.text))
        return advance("name", {"title": ctx.update.text})

    async def ask_name(ctx, data):
        seen.append(("name", ctx.update.text, dict(data)))
        if ctx.update.text == "again":
            return stay()
        return leave()

    async def on_enter(ctx):
        seen.append(("enter",))

    return Scene(
        id="new_pack",
        steps=[Step("title", ask_title), Step("name", ask_name)],
        on_enter=on_enter,
    )


class TestSceneDefinition:
    def test_scene_needs_steps(self):
        with pytest.raises(ValueError):
            Scene(id="empty", steps=[])

    def test_step_names_must_be_unique(self):
        async def noop(ctx, data):
            return stay()

        with pytest.raises(ValueError):
            Scene(id="dup", steps=[Step("a", noop), Step("a", noop)])

    def test_register_twice_fails(self):
        engine = SceneEngine([new_pack_scene([])])
        with pytest.raises(ValueError):
            engine.register(new_pack_scene([]))
        assert "new_pack" in engine


class TestTransitions:
    async def test_enter_sets_first_step_and_runs_on_enter(self, bus):
        seen = []
        engine = SceneEngine([new_pack_scene(seen)])
        ctx = make_ctx(bus, engine)

        await ctx.enter_scene("new_pack", {"type": "video"})

        assert ctx.session.scene == SceneState("new_pack", "title", {"type": "video"})
        assert seen == [("enter",)]

    async def test_enter_unknown_scene(self, bus):
        engine = SceneEngine()
        with pytest.raises(SceneNotFoundError):
            await engine.enter(make_ctx(bus, engine), "missing")

    async def test_enter_without_session(self, bus):
        engine = SceneEngine([new_pack_scene([])])
        ctx = Context(message("x"), bus, scenes=engine)
        with pytest.raises(SceneStateError):
            await engine.enter(ctx, "new_pack")

    async def test_steps_run_one_per_event(self, bus):
        seen = []
        engine = SceneEngine([new_pack_scene(seen)])
        session = Session(key="user:1")
        await engine.enter(make_ctx(bus, engine, session=session), "new_pack")

        assert await engine.handle(make_ctx(bus, engine, "My pack", session))
        assert session.scene.step == "name"
        assert session.scene.data == {"title": "My pack"}

        assert await engine.handle(make_ctx(bus, engine, "again", session))
        assert session.scene.step == "name"

        assert await engine.handle(make_ctx(bus, engine, "my_pack", session))
        assert session.scene is None
        assert seen[1:] == [
            ("title", "My pack"),
            ("name", "again", {"title": "My pack"}),
            ("name", "my_pack", {"title": "My pack"}),
        ]

    async def test_idle_session_is_not_consumed(self, bus):
        engine = SceneEngine([new_pack_scene([])])
        assert await engine.handle(make_ctx(bus, engine)) is False

    async def test_unknown_scene_resets_to_idle(self, bus):
        engine = SceneEngine()
        session = Session(key="user:1", scene=SceneState("removed", "x"))
        assert await engine.handle(make_ctx(bus, engine, session=session)) is False
        assert session.scene is None

    async def test_unknown_current_step_leaves_scene(self, bus):
        engine = SceneEngine([new_pack_scene([])])
        session = Session(key="user:1", scene=SceneState("new_pack", "gone"))
        with pytest.raises(SceneStateError):
            await engine.handle(make_ctx(bus, engine, session=session))
        assert session.scene is None

    async def test_advance_to_unknown_step_leaves_scene(self, bus):
        async def broken(ctx, data):
            return advance("nowhere")

        engine = SceneEngine([Scene(id="s", steps=[Step("a", broken)])])
        session = Session(key="user:1", scene=SceneState("s", "a"))
        with pytest.raises(SceneStateError):
            await engine.handle(make_ctx(bus, engine, session=session))
        assert session.scene is None

    async def test_step_must_return_step_result(self, bus):
        async def sloppy(ctx, data):
            return None

        engine = SceneEngine([Scene(id="s", steps=[Step("a", sloppy)])])
        session = Session(key="user:1", scene=SceneState("s", "a"))
        with pytest.raises(SceneStateError):
            await engine.handle(make_ctx(bus, engine, session=session))
        assert session.scene is None

    async def test_step_entering_another_scene_wins(self, bus):
        async def jump(ctx, data):
            await ctx.enter_scene("other")
            return leave()

        async def idle(ctx, data):
            return stay()

        engine = SceneEngine([
            Scene(id="s", steps=[Step("a", jump)]),
            Scene(id="other", steps=[Step("start", idle)]),
        ])
        session = Session(key="user:1", scene=SceneState("s", "a"))
        await engine.handle(make_ctx(bus, engine, session=session))
        assert session.scene == SceneState("other", "start", {})


class TestEscape:
    def test_escape_commands(self):
        engine = SceneEngine()
        assert engine.is_escape(message("/cancel"))
        assert engine.is_escape(message("/start club"))
        assert engine.is_escape(message("/start@StickerBot"))
        assert not engine.is_escape(message("/packs"))
        assert not engine.is_escape(message("cancel"))

    def test_custom_escape_commands(self):
        engine = SceneEngine(escape_commands=["/stop"])
        assert engine.is_escape(message("/stop"))
        assert not engine.is_escape(message("/cancel"))

    def test_passthrough_commands(self):
        engine = SceneEngine()
        assert engine.is_passthrough(message("/json"))
        assert not engine.is_passthrough(message("/cancel"))
        assert not engine.is_passthrough(message("json"))
