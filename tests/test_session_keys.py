"""会话键推导。"""

import pytest

from stickerbot.bus.events import Origin
from stickerbot.config.schema import SessionConfig
from stickerbot.session.keys import resolve_session_key


class TestResolveSessionKey:
    @pytest.mark.parametrize("sender", [1, 42, 987654321])
    def test_private_chat_uses_user_key(self, sender):
        assert resolve_session_key(Origin(sender_id=sender, chat_id=sender)) == f"user:{sender}"

    def test_sender_without_chat_uses_user_key(self):
        assert resolve_session_key(Origin(sender_id=7)) == "user:7"

    def test_group_chat_uses_sender_and_chat(self):
        assert resolve_session_key(Origin(sender_id=1, chat_id=-100200)) == "1:-100200"

    def test_no_sender_and_no_chat_has_no_key(self):
        assert resolve_session_key(Origin()) is None

    def test_chat_without_sender_has_no_key(self):
        assert resolve_session_key(Origin(chat_id=-100)) is None

    def test_deterministic(self):
        origin = Origin(sender_id=5, chat_id=6)
        assert {resolve_session_key(origin) for _ in range(10)} == {"5:6"}

    def test_custom_templates(self):
        fmt = SessionConfig(store_dir=None, private_key_template="u{sender}", chat_key_template="c{chat}/{sender}")
        assert resolve_session_key(Origin(sender_id=1, chat_id=1), fmt) == "u1"
        assert resolve_session_key(Origin(sender_id=1, chat_id=2), fmt) == "c2/1"
