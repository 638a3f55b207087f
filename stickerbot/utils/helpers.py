"""模块说明：helpers。"""

import time
from pathlib import Path

_UNSAFE_FILENAME_CHARS = '<>:"/\\|?*'


def ensure_dir(path: Path) -> Path:
    """函数说明：ensure_dir。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def monotonic_ms() -> float:
    """单调时钟（毫秒），限流窗口使用。"""
    return time.monotonic() * 1000


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """超过 max_len 时截断，结果（含后缀）不超过 max_len。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def safe_filename(name: str) -> str:
    """会话键 → 文件名：替换文件系统不允许的字符。"""
    return "".join("_" if c in _UNSAFE_FILENAME_CHARS else c for c in name).strip()
