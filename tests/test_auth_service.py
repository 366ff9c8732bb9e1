import pytest
from propfee.orm_models import User
from propfee.password_crypto import hash_password, verify_password
from propfee.services.auth_service import (
    AuthService, AuthenticationError, LoginThrottle, LoginThrottledError
)
from propfee.services.session_store import (
    MemorySessionStorage, JsonFileSessionStorage, UserSession, SessionManager
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_password_hash_is_salted():
    first = hash_password("secret123", iterations=1000)
    second = hash_password("secret123", iterations=1000)

    assert first != second
    assert "secret123" not in first
    assert verify_password("secret123", first)
    assert not verify_password("wrong", first)
    assert not verify_password("secret123", "not-a-hash")


class TestAuthService:

    def test_register_and_login(self, db):
        service = AuthService(db)
        service.register_user("admin", "secret123", "系统管理员", role="admin")

        profile = service.login("admin", "secret123")

        assert profile["username"] == "admin"
        assert profile["displayName"] == "系统管理员"
        assert profile["role"] == "admin"
        assert "password" not in profile
        assert db.query(User).one().password_hash != "secret123"

    def test_wrong_password(self, db):
        service = AuthService(db)
        service.register_user("li", "secret123", "李强")

        with pytest.raises(AuthenticationError):
            service.login("li", "bad")
        with pytest.raises(AuthenticationError):
            service.login("nobody", "secret123")

    def test_duplicate_username_and_bad_role(self, db):
        service = AuthService(db)
        service.register_user("li", "secret123", "李强")

        with pytest.raises(ValueError):
            service.register_user("li", "other", "李强")
        with pytest.raises(ValueError):
            service.register_user("wang", "secret123", "王丽", role="root")

    def test_throttle_locks_after_failures(self, db):
        clock = FakeClock()
        service = AuthService(db, throttle=LoginThrottle(max_attempts=2, window_seconds=60, clock=clock))
        service.register_user("li", "secret123", "李强")

        for _ in range(2):
            with pytest.raises(AuthenticationError):
                service.login("li", "bad")
        with pytest.raises(LoginThrottledError):
            service.login("li", "secret123")

        clock.now += 61
        assert service.login("li", "secret123")["username"] == "li"


class TestLoginThrottle:

    def test_lookups_do_not_create_entries(self):
        throttle = LoginThrottle(max_attempts=3, window_seconds=60, clock=FakeClock())

        for i in range(1000):
            assert not throttle.is_locked(f"user-{i}")

        assert throttle._failures == {}

    def test_expired_failures_are_removed(self):
        clock = FakeClock()
        throttle = LoginThrottle(max_attempts=3, window_seconds=60, clock=clock)
        throttle.record_failure("li")
        throttle.record_failure("wang")
        assert set(throttle._failures) == {"li", "wang"}

        clock.now += 61
        assert not throttle.is_locked("li")
        assert "li" not in throttle._failures

        throttle.record_failure("wang")
        assert len(throttle._failures["wang"]) == 1

    def test_reset_clears_username(self):
        throttle = LoginThrottle(max_attempts=1, window_seconds=60, clock=FakeClock())
        throttle.record_failure("li")
        assert throttle.is_locked("li")

        throttle.reset("li")
        assert not throttle.is_locked("li")
        assert throttle._failures == {}


class TestSession:

    def test_user_session_gate(self):
        session = UserSession(MemorySessionStorage())
        assert not session.is_authenticated

        session.login({"id": "u-1", "username": "admin"})
        assert session.is_authenticated
        assert session.current_user["username"] == "admin"

        session.logout()
        assert session.current_user is None

    def test_json_file_storage_persists(self, tmp_path):
        path = tmp_path / "sessions.json"
        UserSession(JsonFileSessionStorage(str(path))).login({"id": "u-1", "username": "管理员"})

        restored = UserSession(JsonFileSessionStorage(str(path)))
        assert restored.current_user["username"] == "管理员"

    def test_corrupt_session_is_cleared(self):
        storage = MemorySessionStorage()
        storage.set("propfee_user", "{broken")

        assert UserSession(storage).current_user is None
        assert storage.get("propfee_user") is None

    def test_session_manager_tokens(self):
        manager = SessionManager(MemorySessionStorage())
        token = manager.open({"id": "u-1", "username": "admin"})
        other = manager.open({"id": "u-2", "username": "li"})

        assert manager.get(token)["username"] == "admin"
        manager.close(token)
        assert manager.get(token) is None
        assert manager.get(other)["username"] == "li"
        assert manager.get(None) is None
