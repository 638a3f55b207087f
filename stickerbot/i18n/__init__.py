"""模块说明：__init__。"""

from stickerbot.i18n.translator import BoundTranslator, I18n

__all__ = ["I18n", "BoundTranslator"]
