import logging
import time
import uuid
from collections import deque
from typing import Dict, Any, Deque
from sqlalchemy.orm import Session

from ..config import settings
from ..orm_models import User
from ..password_crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

ROLES = ("admin", "staff")


class AuthenticationError(Exception):
    """用户名或密码错误"""


class LoginThrottledError(Exception):
    """登录失败次数过多，暂时锁定"""


class LoginThrottle:
    """按用户名统计时间窗口内的失败次数"""

    def __init__(self, max_attempts: int = None, window_seconds: int = None, clock=time.monotonic):
        self.max_attempts = max_attempts or settings.LOGIN_MAX_ATTEMPTS
        self.window_seconds = window_seconds or settings.LOGIN_WINDOW_SECONDS
        self.clock = clock
        self._failures: Dict[str, Deque[float]] = {}

    def _prune(self, username: str) -> int:
        """清理窗口外的失败记录，返回剩余次数；清空后移除该用户名"""
        failures = self._failures.get(username)
        if failures is None:
            return 0
        cutoff = self.clock() - self.window_seconds
        while failures and failures[0] <= cutoff:
            failures.popleft()
        if not failures:
            del self._failures[username]
        return len(failures)

    def is_locked(self, username: str) -> bool:
        return self._prune(username) >= self.max_attempts

    def record_failure(self, username: str) -> None:
        self._prune(username)
        self._failures.setdefault(username, deque()).append(self.clock())

    def reset(self, username: str) -> None:
        self._failures.pop(username, None)


def user_to_profile(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "displayName": user.display_name,
        "role": user.role
    }


class AuthService:
    def __init__(self, db: Session, throttle: LoginThrottle = None):
        self.db = db
        self.throttle = throttle or LoginThrottle()

    def login(self, username: str, password: str) -> Dict[str, Any]:
        if self.throttle.is_locked(username):
            logger.warning(f"登录已锁定: {username}")
            raise LoginThrottledError("登录失败次数过多，请稍后再试")

        user = self.db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.password_hash):
            self.throttle.record_failure(username)
            logger.warning(f"登录失败: {username}")
            raise AuthenticationError("用户名或密码错误")

        self.throttle.reset(username)
        logger.info(f"登录成功: {username}")
        return user_to_profile(user)

    def register_user(self, username: str, password: str, display_name: str, role: str = "staff") -> Dict[str, Any]:
        if role not in ROLES:
            raise ValueError(f"不支持的角色：{role}，仅支持 admin/staff")
        if self.db.query(User.id).filter(User.username == username).first():
            raise ValueError(f"用户名已存在：{username}")

        user = User(
            id=f"u-{uuid.uuid4().hex}",
            username=username,
            password_hash=hash_password(password),
            display_name=display_name,
            role=role
        )
        try:
            self.db.add(user)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"创建用户失败: {username}, 错误: {e}")
            raise
        return user_to_profile(user)
