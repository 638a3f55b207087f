"""会话存储。

Session 在一次事件处理期间被“借出”，处理结束后无条件“归还”（保存）。
SessionStore 定义 load/save 接口；MemorySessionStore 仅驻留内存，
SessionManager 以 JSON 文件持久化并缓存已加载的会话。
"""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from stickerbot.errors import StoreError
from stickerbot.utils.helpers import ensure_dir, safe_filename


@dataclass
class SceneState:
    """进行中的场景：场景 ID、当前步骤与场景内的局部数据。"""

    scene_id: str
    step: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"scene_id": self.scene_id, "step": self.step, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SceneState":
        return cls(scene_id=data["scene_id"], step=data["step"], data=dict(data.get("data") or {}))


@dataclass
class Session:
    """类说明：Session。"""

    key: str  # user:<id> 或 <sender>:<chat>
    user: dict[str, Any] = field(default_factory=dict)  # id / username / first_name / language_code
    locale: str | None = None  # 用户显式选择的语言，优先于 language_code
    scene: SceneState | None = None
    data: dict[str, Any] = field(default_factory=dict)  # 功能模块的子状态
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def sticker_set(self) -> dict[str, Any] | None:
        """当前选中的贴纸包。"""
        return self.data.get("sticker_set")

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """函数说明：to_dict。"""
        return {
            "_type": "session",
            "key": self.key,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "user": self.user,
            "locale": self.locale,
            "scene": self.scene.to_dict() if self.scene else None,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> "Session":
        """函数说明：from_dict。"""
        scene = data.get("scene")
        return cls(
            key=key,
            user=dict(data.get("user") or {}),
            locale=data.get("locale"),
            scene=SceneState.from_dict(scene) if scene else None,
            data=dict(data.get("data") or {}),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(),
        )


class SessionStore(ABC):
    """会话持久化接口。"""

    @abstractmethod
    async def load(self, key: str) -> Session:
        """读取会话；不存在时返回默认会话。"""
        pass

    @abstractmethod
    async def save(self, key: str, session: Session) -> None:
        """保存会话；失败时抛出 StoreError。"""
        pass


class MemorySessionStore(SessionStore):
    """进程内会话存储，同一键始终返回同一个对象。"""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    async def load(self, key: str) -> Session:
        session = self._sessions.get(key)
        if session is None:
            session = self._sessions[key] = Session(key=key)
        return session

    async def save(self, key: str, session: Session) -> None:
        session.touch()
        self._sessions[key] = session

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager(SessionStore):
    """以 JSON 文件持久化会话，每个键一个文件，并缓存已加载的会话。"""

    def __init__(self, sessions_dir: Path):
        self.sessions_dir = ensure_dir(sessions_dir.expanduser())
        self._cache: dict[str, Session] = {}

    def _get_session_path(self, key: str) -> Path:
        """函数说明：_get_session_path。"""
        safe_key = safe_filename(key.replace(":", "_"))
        return self.sessions_dir / f"{safe_key}.json"

    async def load(self, key: str) -> Session:
        """优先命中缓存，其次读取文件，最后创建默认会话。"""
        if key in self._cache:
            return self._cache[key]

        session = self._load(key)
        if session is None:
            session = Session(key=key)

        self._cache[key] = session
        return session

    def _load(self, key: str) -> Session | None:
        """函数说明：_load。"""
        path = self._get_session_path(key)

        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Session.from_dict(key, data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            # 损坏的会话文件不应阻塞用户，按新会话处理
            logger.warning(f"Failed to load session {key}: {e}")
            return None

    async def save(self, key: str, session: Session) -> None:
        """先写临时文件再替换，避免写到一半的文件覆盖旧数据。"""
        session.touch()
        path = self._get_session_path(key)
        tmp_path = path.with_suffix(".json.tmp")

        try:
            payload = json.dumps(session.to_dict(), ensure_ascii=False)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(key, str(e)) from e

        self._cache[key] = session

    def delete(self, key: str) -> bool:
        """函数说明：delete。"""
        self._cache.pop(key, None)

        path = self._get_session_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_sessions(self) -> list[dict[str, Any]]:
        """列出磁盘上的会话，按最近更新时间倒序。"""
        sessions = []

        for path in self.sessions_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.debug(f"Skipping unreadable session file {path}: {e}")
                continue
            if data.get("_type") == "session":
                sessions.append({
                    "key": data.get("key", path.stem),
                    "created_at": data.get("created_at"),
                    "updated_at": data.get("updated_at"),
                    "path": str(path),
                })

        return sorted(sessions, key=lambda x: x.get("updated_at") or "", reverse=True)
