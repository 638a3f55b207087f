"""贴纸机器人的路由表。"""

import pytest

from stickerbot.app import create_dispatcher
from stickerbot.config.schema import RateLimitConfig
from stickerbot.dispatch.context import Context
from stickerbot.ratelimit.limiter import RateLimiter
from stickerbot.routes import NEW_PACK_SCENE, FeatureHandlers, build_router
from stickerbot.scenes.engine import Scene, Step, stay
from stickerbot.session.manager import Session

from helpers import FakeClock, callback, edited, inline_query, message


class RecordingFeatures(FeatureHandlers):
    """记录被调用的功能、包类型与正则捕获。"""

    def __init__(self):
        self.calls = []

    async def _missing(self, name, ctx):
        captured = ctx.match.group(1) if ctx.match is not None and ctx.match.groups() else None
        self.calls.append((name, ctx.state.get("type"), captured))

    def scenes(self):
        async def title(ctx, data):
            return stay()

        return [Scene(id=NEW_PACK_SCENE, steps=[Step("title", title)])]


@pytest.fixture
def features():
    return RecordingFeatures()


@pytest.fixture
def dispatcher(config, bus, store, features):
    return create_dispatcher(config, bus=bus, features=features, store=store)


async def names(dispatcher, features, update):
    features.calls.clear()
    await dispatcher.dispatch(update)
    return [call[0] for call in features.calls]


class TestStart:
    async def test_plain_start_falls_back_to_start(self, dispatcher, features):
        assert await names(dispatcher, features, message("/start", sender=10)) == ["start"]

    async def test_any_other_message_falls_back_to_start(self, dispatcher, features):
        assert await names(dispatcher, features, message("what is this", sender=10)) == ["start"]

    async def test_start_inline_pack(self, dispatcher, features):
        await dispatcher.dispatch(message("/start inline_pack", sender=10))
        assert features.calls == [("packs", "inline", None)]

    async def test_start_select_pack(self, dispatcher, features):
        await dispatcher.dispatch(message("/start s_cats_by_bot", sender=10))
        assert features.calls == [("select_pack", None, "cats_by_bot")]

    async def test_start_club(self, dispatcher, features):
        assert await names(dispatcher, features, message("/start club", sender=10)) == ["club"]


class TestPackMenus:
    @pytest.mark.parametrize(
        "text, pack_type",
        [
            ("/packs", "common"),
            ("👜 Packs", "common"),
            ("👜 Паки", "common"),
            ("/inline", "inline"),
            ("/anim", "animated"),
            ("✨ Анимированные", "animated"),
            ("/video", "video"),
        ],
    )
    async def test_pack_lists(self, dispatcher, features, text, pack_type):
        await dispatcher.dispatch(message(text, sender=11))
        assert features.calls == [("packs", pack_type, None)]

    async def test_new_pack_enters_scene(self, dispatcher, store):
        await dispatcher.dispatch(message("/new", sender=12))
        assert (await store.load("user:12")).scene.scene_id == NEW_PACK_SCENE

        await dispatcher.dispatch(callback("new_pack", sender=13))
        assert (await store.load("user:13")).scene.scene_id == NEW_PACK_SCENE

    async def test_public_selects_pack(self, dispatcher, features):
        assert await names(dispatcher, features, message("/public", sender=11)) == ["select_pack"]


class TestCopyAndRestore:
    async def test_addstickers_link(self, dispatcher, features):
        await dispatcher.dispatch(message("https://t.me/addstickers/Cats", sender=14))
        assert features.calls == [("copy_pack", None, "Cats")]

    async def test_copy_without_link_shows_help(self, dispatcher, features, bus):
        await dispatcher.dispatch(message("/copy", sender=14))
        assert features.calls == []
        assert "addstickers" in bus.sent()[-1].content

    async def test_copy_with_link_reaches_copy_pack(self, dispatcher, features):
        await dispatcher.dispatch(message("/copy https://t.me/addstickers/Dogs", sender=14))
        assert features.calls == [("copy_pack", None, "Dogs")]

    async def test_forward_from_stickers_bot_restores(self, dispatcher, features):
        forwarded = message("Cats pack", sender=15, forward_from={"id": 429000, "is_bot": True})
        assert await names(dispatcher, features, forwarded) == ["restore_pack"]

        other = message("Cats pack", sender=15, forward_from={"id": 1234})
        assert await names(dispatcher, features, other) == ["start"]


class TestStickers:
    async def test_emoji_updates_sticker(self, dispatcher, features):
        assert await names(dispatcher, features, message("😀", sender=16)) == ["sticker_update"]

    async def test_extended_symbol_range_counts_as_emoji(self, dispatcher, features):
        assert await names(dispatcher, features, message("\U0001FB00", sender=16)) == ["sticker_update"]

    @pytest.mark.parametrize("field", ["sticker", "document", "photo", "video"])
    async def test_media_goes_to_sticker(self, dispatcher, features, field):
        update = message(sender=17, **{field: {"file_id": "f"}})
        assert await names(dispatcher, features, update) == ["sticker"]

    async def test_public_pack_is_limited(self, dispatcher, features, store, bus):
        session = await store.load("user:18")
        session.data["sticker_set"] = {"name": "shared", "passcode": "public"}

        first = await names(dispatcher, features, message(sender=18, sticker={"file_id": "a"}))
        second = await names(dispatcher, features, message(sender=18, sticker={"file_id": "b"}))

        assert first == ["sticker"]
        assert second == []
        assert bus.sent()[-1].content == "Too many requests, slow down a little ⏳"

    async def test_public_pack_limit_does_not_block_other_actions(self, dispatcher, features, store):
        session = await store.load("user:18")
        session.data["sticker_set"] = {"name": "shared", "passcode": "public"}

        assert await names(dispatcher, features, message(sender=18, sticker={"file_id": "a"})) == ["sticker"]
        assert await names(dispatcher, features, message(sender=18, sticker={"file_id": "b"})) == []

        # 同一窗口内：不受限的回调与切换到私有包后的上传都照常处理
        assert await names(dispatcher, features, callback("hide_pack:1", sender=18)) == ["hide_pack"]
        session.data["sticker_set"] = {"name": "mine", "passcode": "secret"}
        assert await names(dispatcher, features, message(sender=18, sticker={"file_id": "c"})) == ["sticker"]

    async def test_injected_public_pack_limiter_is_used(self, config, i18n, features, bus):
        limiter = RateLimiter(RateLimitConfig(window_ms=60_000, limit=1), clock=FakeClock(0.0))
        router = build_router(features, i18n, config, public_pack_limiter=limiter)

        ctx = Context(message(sender=30, sticker={"file_id": "a"}), bus)
        ctx.session = Session(key="user:30", data={"sticker_set": {"passcode": "public"}})
        assert await router.route(ctx)

        assert features.calls == [("sticker", None, None)]
        assert limiter.pending("30") == 1

    async def test_private_pack_is_not_limited(self, dispatcher, features, store):
        session = await store.load("user:19")
        session.data["sticker_set"] = {"name": "mine", "passcode": "secret"}
        for _ in range(3):
            assert await names(dispatcher, features, message(sender=19, sticker={"file_id": "a"})) == ["sticker"]


class TestCallbacks:
    @pytest.mark.parametrize(
        "data, expected",
        [
            ("set_pack:1", "packs"),
            ("hide_pack:1", "hide_pack"),
            ("delete_sticker:abc", "delete_sticker"),
            ("restore_sticker:abc", "restore_sticker"),
            ("club:buy", "club"),
        ],
    )
    async def test_actions(self, dispatcher, features, bus, data, expected):
        assert await names(dispatcher, features, callback(data, sender=20)) == [expected]
        assert len(bus.sent("answer_callback_query")) == 1


class TestMisc:
    async def test_inline_query_gets_empty_answer(self, dispatcher, features, bus):
        assert await names(dispatcher, features, inline_query("cats", sender=21)) == []
        assert len(bus.sent("answer_inline_query")) == 1

    async def test_json_dumps_update(self, dispatcher, bus):
        await dispatcher.dispatch(message("/json", sender=22))
        reply = bus.sent()[-1]
        assert reply.content.startswith("<code>{")
        assert reply.params["parse_mode"] == "HTML"

    async def test_language_switch(self, dispatcher, bus, store):
        await dispatcher.dispatch(message("/lang", sender=23))
        keyboard = bus.sent()[-1].params["reply_markup"]["inline_keyboard"]
        assert ["set_language:en"] in [[b["callback_data"] for b in row] for row in keyboard]

        await dispatcher.dispatch(callback("set_language:ru", sender=23))
        assert (await store.load("user:23")).locale == "ru"
        assert bus.sent("answer_callback_query")[-1].params["text"] == "Язык изменён"

    async def test_unknown_language_is_ignored(self, dispatcher, store):
        await dispatcher.dispatch(callback("set_language:xx", sender=24))
        assert (await store.load("user:24")).locale is None


class TestEditedMessages:
    async def test_edits_are_not_routed(self, dispatcher, features):
        assert await names(dispatcher, features, edited("typo fixed", sender=25)) == []
        assert await names(dispatcher, features, edited(sender=25, photo=[{"file_id": "p"}], caption="x")) == []

    async def test_fallback_ignores_edits_when_they_are_not_filtered(self, config, bus, store, features):
        config.dispatcher.ignored_kinds = ["channel_post", "edited_channel_post", "poll"]
        dispatcher = create_dispatcher(config, bus=bus, features=features, store=store)

        assert await names(dispatcher, features, edited("hello again", sender=26)) == []
        assert await names(dispatcher, features, message("hello", sender=26)) == ["start"]
