"""命令行入口：python -m stickerbot [--config PATH] [--verbose]"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from stickerbot.app import create_dispatcher
from stickerbot.bus.queue import MessageBus
from stickerbot.channels.telegram import TelegramChannel
from stickerbot.config.loader import load_config
from stickerbot.config.schema import Config
from stickerbot.dispatch.context import AppContext


def build_app_context(config: Config, detected_username: str | None) -> AppContext:
    """配置中的用户名优先，否则使用 get_me 返回的用户名。"""
    return AppContext(bot_username=config.telegram.username or detected_username)


async def serve(config_path: Path | None) -> None:
    """启动 Telegram 渠道、出站分发与 Dispatcher，直到被取消。"""
    config = load_config(config_path)
    bus = MessageBus()

    channel = TelegramChannel(config.telegram, bus)
    app = build_app_context(config, await channel.connect())
    dispatcher = create_dispatcher(config, bus=bus, app=app)
    bus.subscribe_outbound(channel.name, channel.send)

    tasks = [
        asyncio.create_task(channel.start()),
        asyncio.create_task(bus.dispatch_outbound()),
        asyncio.create_task(dispatcher.run()),
    ]
    try:
        await asyncio.gather(*tasks)
    finally:
        await channel.stop()
        await dispatcher.shutdown()
        bus.stop()
        for task in tasks:
            task.cancel()


def main() -> None:
    parser = argparse.ArgumentParser(prog="stickerbot")
    parser.add_argument("--config", type=Path, default=None, help="config.json path")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    try:
        asyncio.run(serve(args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted, bye")


if __name__ == "__main__":
    main()
