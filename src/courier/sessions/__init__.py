from courier.sessions.manager import SessionManager
from courier.sessions.registry import Session, SessionRegistry, session_key
from courier.sessions.shutdown import ShutdownCoordinator

__all__ = [
    "Session",
    "SessionManager",
    "SessionRegistry",
    "ShutdownCoordinator",
    "session_key",
]
