from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from enum import Enum

from courier.config import StatusConfig
from courier.logging import get_logger
from courier.parser import summarize_task
from courier.process.base import ProcessHandle, RuntimeProcessError, StreamName
from courier.transport.base import StatusSink

log = get_logger("relay")

ELLIPSIS = "..."
STDERR_MARKER = "[stderr] "
EMPTY_SUCCESS_TEXT = "Task completed successfully (no output)"
EMPTY_FAILURE_TEXT = "No output"


class RelayState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in {RelayState.SUCCEEDED, RelayState.FAILED, RelayState.ERRORED}


def truncate_tail(text: str, limit: int) -> str:
    """Keep the last ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) > limit:
        return ELLIPSIS + text[-limit:]
    return text


def _code_block(body: str) -> str:
    return f"```\n{body}\n```"


def render_starting(directory: str, task_summary: str) -> str:
    return (
        "🚀 Starting Claude Code session...\n"
        f"📁 Directory: `{directory}`\n"
        f"📝 Task: {task_summary}"
    )


def render_running(directory: str, task_summary: str, pid: int | None = None) -> str:
    header = "⏳ **Working**" if pid is None else f"⏳ **Working** (pid {pid})"
    return f"{header}\n📁 `{directory}`\n📝 Task: {task_summary}"


def render_progress(directory: str, output: str, *, final: bool, max_display: int) -> str:
    prefix = "✅ **Completed**" if final else "⏳ **Working**"
    return f"{prefix}\n📁 `{directory}`\n\n{_code_block(truncate_tail(output, max_display))}"


def render_failure(directory: str, exit_code: int | None, output: str, *, tail_length: int) -> str:
    body = truncate_tail(output, tail_length) if output else EMPTY_FAILURE_TEXT
    return f"❌ **Failed** (exit code: {exit_code})\n📁 `{directory}`\n\n{_code_block(body)}"


def render_error(error: BaseException | str, *, title: str = "Error running Claude Code") -> str:
    return f"❌ **{title}**\n{_code_block(str(error))}"


class StatusRelay:
    """Buffers task output and mirrors it into an editable status message.

    Intermediate writes are rate limited by a watermark: a chunk only triggers
    a write when more than ``update_interval_seconds`` have passed since the
    last one, and that write carries the whole buffer. Exactly one final
    write is attempted when the relay reaches a terminal state.
    """

    def __init__(
        self,
        sink: StatusSink,
        directory: str,
        task: str,
        settings: StatusConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self.directory = directory
        self.task = task
        self.settings = settings or StatusConfig()
        self.clock = clock
        self.state = RelayState.STARTING
        self.buffer = ""
        self.watermark = clock()
        self._stderr_line_start = True

    @property
    def task_summary(self) -> str:
        return summarize_task(self.task, self.settings.task_summary_length)

    def _transition(self, target: RelayState) -> bool:
        if self.state.is_terminal:
            log.debug("Ignoring %s transition, relay already %s", target.value, self.state.value)
            return False
        self.state = target
        return True

    async def _write(self, text: str, *, is_final: bool = False) -> bool:
        formatted = text[: self.settings.message_limit]
        log.debug(
            "Updating status message (final: %s, length: %d)", is_final, len(formatted)
        )
        try:
            await self.sink.update(formatted, is_final)
        except Exception as exc:
            log.error("Failed to update status message: %s", exc)
            return False
        return True

    def _append(self, chunk: str, is_error: bool) -> None:
        if not is_error:
            self.buffer += chunk
            return
        tagged: list[str] = []
        for line in chunk.splitlines(keepends=True):
            if self._stderr_line_start:
                tagged.append(STDERR_MARKER)
            tagged.append(line)
            self._stderr_line_start = line.endswith(("\n", "\r"))
        self.buffer += "".join(tagged)

    async def start(self, pid: int | None = None) -> None:
        if self.state is not RelayState.STARTING:
            log.debug("Relay already started (%s)", self.state.value)
            return
        self._transition(RelayState.RUNNING)
        self.watermark = self.clock()
        await self._write(render_running(self.directory, self.task_summary, pid))

    async def on_output(self, chunk: str, is_error: bool = False) -> None:
        if self.state.is_terminal or not chunk:
            return
        self._append(chunk, is_error)
        log.debug(
            "[%s] Received %d chars (buffer %d)",
            "stderr" if is_error else "stdout",
            len(chunk),
            len(self.buffer),
        )
        if self.state is not RelayState.RUNNING:
            return
        now = self.clock()
        if now - self.watermark > self.settings.update_interval_seconds:
            self.watermark = now
            await self._write(
                render_progress(
                    self.directory,
                    self.buffer,
                    final=False,
                    max_display=self.settings.max_display_length,
                )
            )

    async def on_exit(self, exit_code: int | None) -> None:
        if exit_code == 0:
            if not self._transition(RelayState.SUCCEEDED):
                return
            log.info("Task completed successfully in %s", self.directory)
            text = render_progress(
                self.directory,
                self.buffer or EMPTY_SUCCESS_TEXT,
                final=True,
                max_display=self.settings.max_display_length,
            )
        else:
            if not self._transition(RelayState.FAILED):
                return
            log.warning("Task failed with exit code %s in %s", exit_code, self.directory)
            text = render_failure(
                self.directory,
                exit_code,
                self.buffer,
                tail_length=self.settings.failure_tail_length,
            )
        await self._write(text, is_final=True)

    async def on_error(self, error: BaseException | str) -> None:
        title = "Error spawning Claude Code"
        if self.state is RelayState.RUNNING:
            title = "Error running Claude Code"
        if not self._transition(RelayState.ERRORED):
            return
        log.error("%s: %s", title, error)
        await self._write(render_error(error, title=title), is_final=True)

    async def _pump(self, handle: ProcessHandle, stream: StreamName) -> None:
        async for chunk in handle.chunks(stream):
            await self.on_output(chunk, is_error=stream == "stderr")

    async def follow(self, handle: ProcessHandle) -> RelayState:
        """Relay both output streams until the process exits."""
        pumps = [
            asyncio.create_task(self._pump(handle, "stdout")),
            asyncio.create_task(self._pump(handle, "stderr")),
        ]
        try:
            await asyncio.gather(*pumps)
            exit_code = await handle.wait()
        except (RuntimeProcessError, OSError) as exc:
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            # The output can no longer be relayed, so the process must not outlive it.
            try:
                handle.terminate()
            except ProcessLookupError:
                log.debug("Process %s already exited", handle.pid)
            await self.on_error(exc)
            return self.state

        log.info(
            "Process %s exited with code %s (output %d chars)",
            handle.pid,
            exit_code,
            len(self.buffer),
        )
        await self.on_exit(exit_code)
        return self.state
