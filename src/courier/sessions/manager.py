from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from courier.config import CourierConfig
from courier.logging import get_logger
from courier.parser import (
    TaskRequest,
    resolve_request,
    split_path_prefix,
    strip_mentions,
    summarize_task,
    validate_directory,
)
from courier.process.base import ProcessHandle, ProcessRunnerError
from courier.process.runner import ProcessRunner
from courier.relay import RelayState, StatusRelay, render_starting
from courier.sessions.registry import SessionRegistry, session_key
from courier.transport.base import InboundMessage, StatusSink

log = get_logger("sessions")

ALREADY_ACTIVE_TEXT = (
    "⚠️ You already have an active Claude Code session. Please wait for it to complete."
)


def help_text(default_directory: str) -> str:
    return (
        "👋 Send me a task to work on!\n\n"
        "**Format:**\n"
        "• Just send a task: `fix the login bug`\n"
        "• With specific directory: `/path/to/project: fix the login bug`\n\n"
        f"Default directory: `{default_directory}`"
    )


def directory_not_found_text(directory: str) -> str:
    return f"❌ Directory not found: `{directory}`"


class SessionManager:
    """Admits chat requests and runs each one as a relayed task process."""

    def __init__(
        self,
        config: CourierConfig,
        registry: SessionRegistry,
        runner: ProcessRunner,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.registry = registry
        self.runner = runner
        self.clock = clock
        self._tasks: set[asyncio.Task[RelayState]] = set()

    @property
    def active_tasks(self) -> set[asyncio.Task[RelayState]]:
        return set(self._tasks)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _reply(self, message: InboundMessage, text: str) -> None:
        try:
            await message.reply(text)
        except Exception as exc:
            log.error("Failed to reply to %s: %s", message.author_tag, exc)

    async def handle_message(self, message: InboundMessage) -> asyncio.Task[RelayState] | None:
        """Route one inbound message; returns the session task when one starts."""
        if message.author_is_bot:
            log.debug("Ignoring bot message from %s", message.author_tag)
            return None
        if not message.is_private and not message.mentions_bot:
            log.debug("Ignoring message in %s: not private and bot not mentioned",
                      message.channel_id)
            return None

        log.info("Processing message from %s", message.author_tag)
        content = strip_mentions(message.content)
        default_directory = self.config.relay.default_directory
        if not content:
            log.info("Empty message received, sending help text")
            await self._reply(message, help_text(default_directory))
            return None

        request = await resolve_request(
            content, default_directory, self.config.relay.home_directory
        )
        log.info(
            "Message parsed: directory=%s task=%s",
            request.directory,
            summarize_task(request.task, self.config.status.task_summary_length),
        )
        # A path prefix that failed to resolve is reported instead of being run
        # as a task in the default directory.
        prefixed = split_path_prefix(content, self.config.relay.home_directory)
        directory = prefixed.directory if prefixed is not None else request.directory
        if not await validate_directory(directory):
            log.error("Directory not found: %s", directory)
            await self._reply(message, directory_not_found_text(directory))
            return None

        return await self.start_session(message, request)

    async def start_session(
        self, message: InboundMessage, request: TaskRequest
    ) -> asyncio.Task[RelayState] | None:
        key = session_key(message.channel_id, message.author_id)
        if not self.registry.try_acquire(key):
            log.warning("%s already has an active session: %s", message.author_tag, key)
            await self._reply(message, ALREADY_ACTIVE_TEXT)
            return None

        summary = summarize_task(request.task, self.config.status.task_summary_length)
        try:
            status_message = await message.reply(
                render_starting(request.directory, summary)[: self.config.status.message_limit]
            )
        except Exception as exc:
            log.error("Failed to send initial status for %s: %s", key, exc)
            self.registry.release(key)
            return None

        relay = StatusRelay(
            StatusSink(status_message, limit=self.config.status.message_limit),
            request.directory,
            request.task,
            self.config.status,
            clock=self.clock,
        )
        task = asyncio.create_task(self._run_session(key, request, relay), name=f"session-{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_session(
        self, key: str, request: TaskRequest, relay: StatusRelay
    ) -> RelayState:
        log.info("Starting session %s in %s", key, request.directory)
        handle: ProcessHandle | None = None
        try:
            try:
                handle = await self.runner.spawn(request.directory, request.task)
            except ProcessRunnerError as exc:
                await relay.on_error(exc)
                return relay.state
            if not self.registry.bind(key, handle):
                # Shutdown ran while the process was starting.
                handle.terminate()
            await relay.start(handle.pid)
            return await relay.follow(handle)
        finally:
            if handle is not None and handle.returncode is None:
                # Released keys are out of reach of shutdown; stop the process first.
                try:
                    handle.terminate()
                except ProcessLookupError:
                    log.debug("Process %s already exited", handle.pid)
            self.registry.release(key)
            log.info("Session %s finished (%s)", key, relay.state.value)
