from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterable

from courier.logging import get_logger
from courier.process.base import ProcessHandle
from courier.sessions.registry import SessionRegistry
from courier.transport.base import Transport

log = get_logger("shutdown")

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Stops every registered task process and closes the transport.

    Termination is fire-and-forget. With ``kill_after_seconds`` above zero,
    processes still alive after that grace period are killed; shutdown never
    waits longer than that.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: Transport | None = None,
        kill_after_seconds: float = 0.0,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.kill_after_seconds = kill_after_seconds
        self.done = asyncio.Event()
        self._started = False
        self._shutdown_task: asyncio.Future[None] | None = None

    def install(
        self,
        loop: asyncio.AbstractEventLoop,
        signals: Iterable[int] = DEFAULT_SIGNALS,
    ) -> None:
        for sig in signals:
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _on_signal(self, sig: int) -> None:
        name = signal.Signals(sig).name
        log.warning("Received %s, shutting down...", name)
        self._shutdown_task = asyncio.ensure_future(self.shutdown(reason=name))

    def terminate_all(self) -> list[ProcessHandle]:
        keys = sorted(self.registry.all_keys())
        log.info("Terminating %d active sessions", len(keys))
        signalled: list[ProcessHandle] = []
        for key in keys:
            handle = self.registry.get(key)
            if handle is None:
                log.debug("Session %s has no process yet", key)
                continue
            log.info("Terminating process %s for session %s", handle.pid, key)
            try:
                handle.terminate(signal.SIGTERM)
            except ProcessLookupError:
                log.debug("Process %s already exited", handle.pid)
                continue
            signalled.append(handle)
        return signalled

    async def _escalate(self, handles: list[ProcessHandle]) -> None:
        waits = [asyncio.ensure_future(handle.wait()) for handle in handles]
        _, pending = await asyncio.wait(waits, timeout=self.kill_after_seconds)
        for waiter in pending:
            waiter.cancel()
        for handle in handles:
            if handle.returncode is not None:
                continue
            log.warning("Process %s ignored SIGTERM, killing", handle.pid)
            try:
                handle.kill()
            except ProcessLookupError:
                log.debug("Process %s already exited", handle.pid)

    async def shutdown(self, reason: str = "shutdown") -> None:
        if self._started:
            await self.done.wait()
            return
        self._started = True
        log.info("Shutdown requested (%s)", reason)
        try:
            handles = self.terminate_all()
            if handles and self.kill_after_seconds > 0:
                await self._escalate(handles)
            self.registry.clear()
            if self.transport is not None:
                log.info("Closing transport")
                try:
                    await self.transport.close()
                except Exception as exc:
                    log.error("Failed to close transport: %s", exc)
        finally:
            log.info("Shutdown complete")
            self.done.set()

    async def wait(self) -> None:
        await self.done.wait()
