"""配置模块。"""

from stickerbot.config.loader import load_config, save_config, get_config_path
from stickerbot.config.schema import (
    Config,
    DispatcherConfig,
    I18nConfig,
    RateLimitConfig,
    RateLimitsConfig,
    SessionConfig,
    TelegramConfig,
)

__all__ = [
    "Config",
    "DispatcherConfig",
    "I18nConfig",
    "RateLimitConfig",
    "RateLimitsConfig",
    "SessionConfig",
    "TelegramConfig",
    "load_config",
    "save_config",
    "get_config_path",
]
