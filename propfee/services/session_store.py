import json
import logging
import secrets
import threading
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

SESSION_KEY = "propfee_user"


class SessionStorage:
    """会话键值存储接口"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def clear(self, key: str) -> None:
        raise NotImplementedError


class MemorySessionStorage(SessionStorage):
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileSessionStorage(SessionStorage):
    """持久化到本地 JSON 文件，服务重启后会话仍然有效"""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"读取会话文件失败 {self.path}: {e}")
            return {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def clear(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


class UserSession:
    """登录会话：存储中保存序列化的用户信息，键存在即视为已登录"""

    def __init__(self, storage: SessionStorage, key: str = SESSION_KEY):
        self.storage = storage
        self.key = key

    @property
    def current_user(self) -> Optional[Dict[str, Any]]:
        raw = self.storage.get(self.key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"会话数据损坏，已清除: {self.key}")
            self.storage.clear(self.key)
            return None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def login(self, profile: Dict[str, Any]) -> None:
        self.storage.set(self.key, json.dumps(profile, ensure_ascii=False))

    def logout(self) -> None:
        self.storage.clear(self.key)


class SessionManager:
    """HTTP 层会话管理：每个令牌对应一个 UserSession"""

    def __init__(self, storage: SessionStorage):
        self.storage = storage

    def _session(self, token: str) -> UserSession:
        return UserSession(self.storage, key=f"{SESSION_KEY}:{token}")

    def open(self, profile: Dict[str, Any]) -> str:
        token = secrets.token_urlsafe(32)
        self._session(token).login(profile)
        return token

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        return self._session(token).current_user

    def close(self, token: str) -> None:
        if token:
            self._session(token).logout()
