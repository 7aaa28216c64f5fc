from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from courier.logging import get_logger
from courier.process.base import ProcessHandle

log = get_logger("registry")


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def session_key(channel_id: str, author_id: str) -> str:
    return f"{channel_id}-{author_id}"


@dataclass(slots=True)
class Session:
    key: str
    handle: ProcessHandle | None = None
    started_at: str = field(default_factory=_utcnow_iso)


class SessionRegistry:
    """Active sessions keyed by channel and requester.

    Only touched from the event loop thread; every mutation completes within
    a single loop turn, so acquire and release need no lock.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def try_acquire(self, key: str) -> bool:
        if key in self._sessions:
            log.warning("Session %s is already active", key)
            return False
        self._sessions[key] = Session(key=key)
        log.debug("Acquired session %s (active: %d)", key, len(self._sessions))
        return True

    def bind(self, key: str, handle: ProcessHandle) -> bool:
        session = self._sessions.get(key)
        if session is None:
            log.warning("Cannot bind process to released session %s", key)
            return False
        session.handle = handle
        return True

    def release(self, key: str) -> None:
        if self._sessions.pop(key, None) is None:
            log.debug("Release of unknown session %s ignored", key)
            return
        log.debug("Released session %s (active: %d)", key, len(self._sessions))

    def get(self, key: str) -> ProcessHandle | None:
        session = self._sessions.get(key)
        return session.handle if session else None

    def all_keys(self) -> set[str]:
        return set(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()
