"""会话键推导。

私聊（会话即发送者本人）或没有会话上下文时按用户归档：user:<发送者>；
群组内按 <发送者>:<会话> 隔离；两者都无法确定时不存在会话键。
"""

from stickerbot.bus.events import Origin
from stickerbot.config.schema import SessionConfig

_DEFAULT_FORMAT = SessionConfig(store_dir=None)


def resolve_session_key(origin: Origin, fmt: SessionConfig | None = None) -> str | None:
    """根据事件来源返回会话键；None 表示跳过所有依赖会话的处理。"""
    fmt = fmt or _DEFAULT_FORMAT
    sender, chat = origin.sender_id, origin.chat_id

    if sender is not None and (chat is None or chat == sender):
        return fmt.private_key_template.format(sender=sender)
    if sender is not None and chat is not None:
        return fmt.chat_key_template.format(sender=sender, chat=chat)
    # 只有会话没有发送者（例如匿名频道消息）同样视为无键
    return None
