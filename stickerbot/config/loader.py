"""配置文件读写。

磁盘上的 config.json 使用 camelCase 键，模型字段使用 snake_case，
读写时整棵树递归转换。环境变量（STICKERBOT_*）只在构造默认配置时生效。
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from stickerbot.config.schema import Config

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    """默认位置：~/.stickerbot/config.json。"""
    return Path.home() / ".stickerbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """读取配置；文件缺失时使用默认值，无法解析或校验失败时记录警告后同样回退。"""
    path = config_path or get_config_path()
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        config = Config.model_validate(convert_keys(_migrate_config(raw)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Invalid config {path}, falling back to defaults: {e}")
        return Config()

    logger.info(f"Loaded config from {path}")
    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(convert_to_camel(config.model_dump()), indent=2), encoding="utf-8")


def _migrate_config(data: dict[str, Any]) -> dict[str, Any]:
    """0.2 之前只有一个全局限流，写在顶层 rateLimit 下。"""
    legacy = data.pop("rateLimit", None)
    if isinstance(legacy, dict) and "rateLimits" not in data:
        logger.info("Migrating legacy 'rateLimit' config to 'rateLimits.perUser'")
        data["rateLimits"] = {"perUser": legacy}
    return data


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(v, rename) for v in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase → snake_case（递归）。"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    return _rename_keys(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)
