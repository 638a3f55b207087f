"""配置模型。

所有配置在启动时加载一次，以不可变结构传给各组件，
不存在运行期可修改的全局状态。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TelegramConfig(BaseModel):
    """类说明：TelegramConfig。"""
    token: str = ""  # Bot token from @BotFather
    username: str | None = None  # 用于识别 /cmd@username 形式的命令
    proxy: str | None = None  # HTTP/SOCKS5 proxy URL, e.g. "socks5://127.0.0.1:1080"
    webhook_domain: str | None = None  # 设置后使用 webhook，否则轮询
    webhook_port: int = 2500
    webhook_path: str = "/stickerbot"
    drop_pending_updates: bool = False
    allow_from: list[str] = Field(default_factory=list)  # Allowed user IDs, empty means everyone


class RateLimitConfig(BaseModel):
    """滑动窗口：window_ms 内最多 limit 次。"""
    model_config = ConfigDict(frozen=True)

    window_ms: int = Field(default=1000, gt=0)
    limit: int = Field(default=10, gt=0)


class RateLimitsConfig(BaseModel):
    """类说明：RateLimitsConfig。"""
    per_user: RateLimitConfig = Field(default_factory=lambda: RateLimitConfig(window_ms=1000, limit=10))
    public_pack: RateLimitConfig = Field(default_factory=lambda: RateLimitConfig(window_ms=60_000, limit=1))
    public_scope_value: str = "public"  # 贴纸包 passcode 为该值时视为公共包


class SessionConfig(BaseModel):
    """类说明：SessionConfig。"""
    model_config = ConfigDict(frozen=True)

    store_dir: str | None = "~/.stickerbot/sessions"  # None 表示只保存在内存
    private_key_template: str = "user:{sender}"
    chat_key_template: str = "{sender}:{chat}"


class DispatcherConfig(BaseModel):
    """类说明：DispatcherConfig。"""
    ignored_kinds: list[str] = Field(
        default_factory=lambda: ["edited_message", "channel_post", "edited_channel_post", "poll"]
    )
    escape_commands: list[str] = Field(default_factory=lambda: ["cancel", "start"])
    scene_passthrough_commands: list[str] = Field(default_factory=lambda: ["json"])  # 场景内照常走路由，不离开场景
    handler_timeout_s: float | None = None  # 外部看门狗，默认不启用
    forward_restore_bot_id: int = 429000  # 官方 @Stickers 机器人


class I18nConfig(BaseModel):
    """类说明：I18nConfig。"""
    directory: str | None = None  # None 表示使用包内置的 locales
    default_language: str = "en"


class Config(BaseSettings):
    """根配置；环境变量前缀 STICKERBOT_，嵌套分隔符 __。"""
    model_config = SettingsConfigDict(env_prefix="STICKERBOT_", env_nested_delimiter="__")

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    rate_limits: RateLimitsConfig = Field(default_factory=RateLimitsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
