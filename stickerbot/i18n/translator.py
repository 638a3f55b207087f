"""本地化字符串查找。

每种语言一个 JSON 文件（locales/<lang>.json），嵌套键用点号访问，
占位符写作 ${name}。缺失的键回退到默认语言，再缺失则返回键本身。
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger

_PLACEHOLDER = re.compile(r"\$\{\s*(\w+)\s*\}")

DEFAULT_LOCALES_DIR = Path(__file__).parent / "locales"


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """把嵌套字典展开为 {"a.b.c": "text"}。"""
    flat: dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(_flatten(value, full_key))
        else:
            flat[full_key] = str(value)
    return flat


def _render(template: str, params: dict[str, Any]) -> str:
    def replace(m: re.Match) -> str:
        name = m.group(1)
        return str(params[name]) if name in params else m.group(0)
    return _PLACEHOLDER.sub(replace, template)


class I18n:
    """类说明：I18n。"""

    def __init__(self, directory: Path | None = None, default_language: str = "en"):
        self.directory = directory or DEFAULT_LOCALES_DIR
        self.default_language = default_language
        self._catalogs: dict[str, dict[str, str]] = {}
        self.load()

    def load(self) -> None:
        """（重新）读取目录下所有语言文件。"""
        catalogs: dict[str, dict[str, str]] = {}
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    catalogs[path.stem] = _flatten(json.load(f))
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load locale {path.name}: {e}")
        if self.default_language not in catalogs:
            logger.warning(f"Default language '{self.default_language}' has no locale file in {self.directory}")
        self._catalogs = catalogs
        logger.debug(f"Loaded locales: {', '.join(catalogs) or '-'}")

    @property
    def languages(self) -> list[str]:
        return sorted(self._catalogs)

    def resolve_language(self, locale: str | None) -> str:
        """"pt-BR" 先精确匹配，再取主语言 "pt"，都没有时用默认语言。"""
        if locale:
            locale = locale.lower()
            if locale in self._catalogs:
                return locale
            primary = locale.split("-", 1)[0].split("_", 1)[0]
            if primary in self._catalogs:
                return primary
        return self.default_language

    def t(self, locale: str | None, key: str, **params: Any) -> str:
        """函数说明：t。"""
        language = self.resolve_language(locale)
        template = self._catalogs.get(language, {}).get(key)
        if template is None:
            template = self._catalogs.get(self.default_language, {}).get(key)
        if template is None:
            logger.debug(f"Missing translation for '{key}' ({language})")
            return key
        return _render(template, params)

    def match(self, key: str) -> Callable[[str], bool]:
        """返回一个判断文本是否等于任一语言下该键译文的函数（用于按钮文字）。"""
        def matcher(text: str) -> bool:
            return any(catalog.get(key) == text for catalog in self._catalogs.values())
        matcher.__name__ = f"match({key})"
        return matcher

    def bind(self, locale_getter: Callable[[], str | None]) -> "BoundTranslator":
        return BoundTranslator(self, locale_getter)


class BoundTranslator:
    """绑定到单个事件的翻译器；语言在每次调用时读取，会话加载后立即生效。"""

    def __init__(self, i18n: I18n, locale_getter: Callable[[], str | None]):
        self._i18n = i18n
        self._locale_getter = locale_getter

    @property
    def locale(self) -> str:
        return self._i18n.resolve_language(self._locale_getter())

    @property
    def languages(self) -> list[str]:
        return self._i18n.languages

    def t(self, key: str, **params: Any) -> str:
        return self._i18n.t(self.locale, key, **params)
