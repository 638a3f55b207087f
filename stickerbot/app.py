"""组装 Dispatcher 及其依赖。"""

from pathlib import Path

from loguru import logger

from stickerbot.bus.queue import MessageBus
from stickerbot.config.schema import Config
from stickerbot.dispatch.context import AppContext
from stickerbot.dispatch.dispatcher import Dispatcher
from stickerbot.i18n.translator import I18n
from stickerbot.routes import FeatureHandlers, build_router
from stickerbot.scenes.engine import SceneEngine
from stickerbot.session.manager import MemorySessionStore, SessionManager, SessionStore


def create_store(config: Config) -> SessionStore:
    """store_dir 为空时只在内存中保存会话。"""
    if config.session.store_dir:
        return SessionManager(Path(config.session.store_dir))
    logger.warning("Session store_dir not set, sessions are kept in memory only")
    return MemorySessionStore()


def create_dispatcher(
    config: Config,
    bus: MessageBus | None = None,
    features: FeatureHandlers | None = None,
    store: SessionStore | None = None,
    app: AppContext | None = None,
) -> Dispatcher:
    """函数说明：create_dispatcher。"""
    features = features if features is not None else FeatureHandlers()
    i18n = I18n(
        Path(config.i18n.directory).expanduser() if config.i18n.directory else None,
        default_language=config.i18n.default_language,
    )
    scenes = SceneEngine(
        features.scenes(),
        escape_commands=config.dispatcher.escape_commands,
        passthrough_commands=config.dispatcher.scene_passthrough_commands,
    )

    return Dispatcher(
        config=config,
        bus=bus if bus is not None else MessageBus(),
        store=store if store is not None else create_store(config),
        router=build_router(features, i18n, config),
        i18n=i18n,
        scenes=scenes,
        app=app,
    )
