import asyncio
import signal
from collections.abc import AsyncIterator

from courier.process.base import ProcessHandle, StreamName
from courier.sessions.registry import SessionRegistry, session_key


class IdleHandle(ProcessHandle):
    @property
    def pid(self) -> int | None:
        return 4242

    @property
    def returncode(self) -> int | None:
        return None

    async def chunks(self, stream: StreamName) -> AsyncIterator[str]:
        _ = stream
        return
        yield ""  # pragma: no cover

    async def wait(self) -> int:
        return 0

    def terminate(self, sig: int = signal.SIGTERM) -> None:
        _ = sig


def test_session_key_combines_channel_and_author() -> None:
    assert session_key("chan", "user") == "chan-user"


def test_acquire_is_exclusive_until_release() -> None:
    registry = SessionRegistry()

    assert registry.try_acquire("k") is True
    assert registry.try_acquire("k") is False
    assert registry.all_keys() == {"k"}

    registry.release("k")

    assert "k" not in registry
    assert registry.try_acquire("k") is True


def test_concurrent_acquire_succeeds_once() -> None:
    registry = SessionRegistry()

    async def _acquire() -> bool:
        await asyncio.sleep(0)
        return registry.try_acquire("chan-user")

    async def _run() -> list[bool]:
        return list(await asyncio.gather(_acquire(), _acquire()))

    results = asyncio.run(_run())

    assert sorted(results) == [False, True]
    assert len(registry) == 1


def test_failed_acquire_leaves_bound_handle_untouched() -> None:
    registry = SessionRegistry()
    handle = IdleHandle()
    registry.try_acquire("k")
    assert registry.bind("k", handle) is True

    assert registry.try_acquire("k") is False
    assert registry.get("k") is handle


def test_get_and_bind_on_absent_key() -> None:
    registry = SessionRegistry()

    assert registry.get("missing") is None
    assert registry.bind("missing", IdleHandle()) is False
    registry.release("missing")
    assert len(registry) == 0


def test_clear_drops_all_sessions() -> None:
    registry = SessionRegistry()
    registry.try_acquire("a")
    registry.try_acquire("b")

    registry.clear()

    assert registry.all_keys() == set()


def test_get_tracks_handle_from_bind_to_release() -> None:
    registry = SessionRegistry()
    handle = IdleHandle()

    registry.try_acquire("k")
    assert registry.get("k") is None

    registry.bind("k", handle)
    assert registry.get("k") is handle

    registry.release("k")
    assert registry.get("k") is None
    assert not hasattr(registry, "session")
