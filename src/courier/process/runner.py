from __future__ import annotations

import asyncio
import codecs
import os
import shutil
import signal
from collections.abc import AsyncIterator, Mapping, Sequence

from courier.logging import get_logger
from courier.process.base import (
    ProcessHandle,
    RuntimeProcessError,
    SpawnError,
    StreamName,
)

log = get_logger("process")

DEFAULT_FLAGS = ("-p", "--dangerously-skip-permissions")
DEFAULT_ENV_OVERRIDES = {"CLAUDE_DISABLE_INTERACTIVITY": "1"}


def quote_task(task: str) -> str:
    """Single-quote ``task`` for a POSIX shell, byte for byte."""
    return "'" + task.replace("'", "'\\''") + "'"


class SubprocessHandle(ProcessHandle):
    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        directory: str,
        read_size: int = 4096,
    ) -> None:
        self.process = process
        self.directory = directory
        self.read_size = read_size

    @property
    def pid(self) -> int | None:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def chunks(self, stream: StreamName) -> AsyncIterator[str]:
        reader = self.process.stdout if stream == "stdout" else self.process.stderr
        if reader is None:
            raise RuntimeProcessError(
                f"Task process did not expose {stream}.", directory=self.directory
            )
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = await reader.read(self.read_size)
            except OSError as exc:
                raise RuntimeProcessError(
                    f"Failed reading {stream}: {exc}", directory=self.directory
                ) from exc
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
                return
            text = decoder.decode(data)
            if text:
                yield text

    async def wait(self) -> int:
        return await self.process.wait()

    def terminate(self, sig: int = signal.SIGTERM) -> None:
        if self.process.returncode is not None:
            return
        self.process.send_signal(sig)


class ProcessRunner:
    def __init__(
        self,
        binary: str = "claude",
        flags: Sequence[str] = DEFAULT_FLAGS,
        env_overrides: Mapping[str, str] | None = None,
        read_size: int = 4096,
    ) -> None:
        self.binary = binary
        self.flags = list(flags)
        self.env_overrides = dict(
            DEFAULT_ENV_OVERRIDES if env_overrides is None else env_overrides
        )
        self.read_size = read_size

    def build_command(self, task: str) -> str:
        return " ".join([self.binary, *self.flags, quote_task(task)])

    def build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.env_overrides)
        return env

    async def spawn(self, directory: str, task: str) -> ProcessHandle:
        if shutil.which(self.binary) is None:
            # The shell would only report this as exit status 127 or 126.
            raise SpawnError(
                f"Could not launch {self.binary} in {directory}: executable not found",
                directory=directory,
            )
        command = self.build_command(task)
        log.info("Spawning task process in %s: %s", directory, command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=directory,
                env=self.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpawnError(
                f"Could not launch {self.binary} in {directory}: {exc}", directory=directory
            ) from exc

        log.info("Process spawned with PID %s", process.pid)
        return SubprocessHandle(process, directory=directory, read_size=self.read_size)
