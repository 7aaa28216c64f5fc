from courier.process.base import (
    ProcessHandle,
    ProcessRunnerError,
    RuntimeProcessError,
    SpawnError,
)
from courier.process.runner import ProcessRunner, SubprocessHandle, quote_task

__all__ = [
    "ProcessHandle",
    "ProcessRunner",
    "ProcessRunnerError",
    "RuntimeProcessError",
    "SpawnError",
    "SubprocessHandle",
    "quote_task",
]
