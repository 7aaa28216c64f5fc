from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Callable
from dataclasses import dataclass

from courier.logging import get_logger

log = get_logger("parser")

# Left segment holds no colon; the task after it may span several lines.
REQUEST_PATTERN = re.compile(r"^([^:]+):\s*(.+)$", re.DOTALL)
MENTION_PATTERN = re.compile(r"<@!?\d+>")


@dataclass(frozen=True, slots=True)
class TaskRequest:
    directory: str
    task: str


def summarize_task(task: str, limit: int = 100) -> str:
    if len(task) > limit:
        return f"{task[:limit]}..."
    return task


def strip_mentions(content: str) -> str:
    return MENTION_PATTERN.sub("", content).strip()


def expand_home(path: str, home_directory: str) -> str:
    if path.startswith("~"):
        return home_directory + path[1:]
    return path


def split_path_prefix(raw_text: str, home_directory: str) -> TaskRequest | None:
    """Return the path-shaped prefix and task of ``raw_text``, if it has one.

    The path is ``~``-expanded but not checked against the filesystem.
    """
    match = REQUEST_PATTERN.match(raw_text)
    if match is None:
        return None
    candidate = match.group(1).strip()
    if not candidate.startswith(("/", "~")):
        return None
    task = match.group(2).strip()
    if not task:
        return None
    return TaskRequest(directory=expand_home(candidate, home_directory), task=task)


def parse_request(
    raw_text: str,
    default_directory: str,
    home_directory: str,
    *,
    path_exists: Callable[[str], bool] = os.path.exists,
) -> TaskRequest:
    """Split ``"<path>: <task>"`` into a directory and task.

    Anything that does not name an existing path falls back to the default
    directory with the whole text as the task. Never raises.
    """
    prefixed = split_path_prefix(raw_text, home_directory)
    if prefixed is None:
        log.debug("No path prefix in request, using default directory")
        return TaskRequest(directory=default_directory, task=raw_text.strip())
    if not path_exists(prefixed.directory):
        log.warning("Path does not exist: %s", prefixed.directory)
        return TaskRequest(directory=default_directory, task=raw_text.strip())

    log.debug("Resolved request directory: %s", prefixed.directory)
    return prefixed


def _is_accessible_directory(directory: str) -> bool:
    return os.path.isdir(directory) and os.access(directory, os.X_OK)


async def resolve_request(
    raw_text: str,
    default_directory: str,
    home_directory: str,
) -> TaskRequest:
    return await asyncio.to_thread(parse_request, raw_text, default_directory, home_directory)


async def validate_directory(directory: str) -> bool:
    return await asyncio.to_thread(_is_accessible_directory, directory)
