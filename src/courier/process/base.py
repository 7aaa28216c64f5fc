from __future__ import annotations

import signal
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Literal

StreamName = Literal["stdout", "stderr"]


class ProcessRunnerError(RuntimeError):
    """Raised when a task process cannot be run to completion."""

    def __init__(self, message: str, *, directory: str | None = None) -> None:
        super().__init__(message)
        self.directory = directory


class SpawnError(ProcessRunnerError):
    """Raised when the task executable cannot be launched."""


class RuntimeProcessError(ProcessRunnerError):
    """Raised when a launched process fails while streaming or exiting."""


class ProcessHandle(ABC):
    @property
    @abstractmethod
    def pid(self) -> int | None:
        """Operating-system process identifier."""

    @property
    @abstractmethod
    def returncode(self) -> int | None:
        """Exit code once the process has finished, else None."""

    @abstractmethod
    def chunks(self, stream: StreamName) -> AsyncIterator[str]:
        """Yield decoded output chunks from one of the process streams."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""

    @abstractmethod
    def terminate(self, sig: int = signal.SIGTERM) -> None:
        """Deliver a termination signal without waiting for the exit."""

    def kill(self) -> None:
        self.terminate(signal.SIGKILL)
