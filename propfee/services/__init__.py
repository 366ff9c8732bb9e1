from .data_service import FeeDataService, RecordNotFoundError
from .auth_service import AuthService, AuthenticationError, LoginThrottle, LoginThrottledError
from .session_store import SessionManager, UserSession, MemorySessionStorage, JsonFileSessionStorage
from .ai_service import AiService
from .dashboard_state import DashboardState, DashboardActionError

__all__ = [
    "FeeDataService",
    "RecordNotFoundError",
    "AuthService",
    "AuthenticationError",
    "LoginThrottle",
    "LoginThrottledError",
    "SessionManager",
    "UserSession",
    "MemorySessionStorage",
    "JsonFileSessionStorage",
    "AiService",
    "DashboardState",
    "DashboardActionError"
]
