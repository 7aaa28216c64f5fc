from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values, load_dotenv

TOKEN_ENV_VAR = "DISCORD_TOKEN"
ENV_FILE = ".env"


@dataclass(slots=True)
class RelayConfig:
    default_directory: str = field(default_factory=os.getcwd)
    home_directory: str = field(default_factory=lambda: os.environ.get("HOME", str(Path.home())))


@dataclass(slots=True)
class ProcessConfig:
    binary: str = "claude"
    flags: list[str] = field(default_factory=lambda: ["-p", "--dangerously-skip-permissions"])
    env_overrides: dict[str, str] = field(
        default_factory=lambda: {"CLAUDE_DISABLE_INTERACTIVITY": "1"}
    )
    kill_after_seconds: float = 0.0


@dataclass(slots=True)
class StatusConfig:
    update_interval_seconds: float = 2.0
    max_display_length: int = 1900
    failure_tail_length: int = 1500
    message_limit: int = 2000
    task_summary_length: int = 100


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    file: str | None = None


@dataclass(slots=True)
class CourierConfig:
    relay: RelayConfig = field(default_factory=RelayConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> CourierConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> CourierConfig:
        return cls(
            relay=RelayConfig(**data.get("relay", {})),
            process=ProcessConfig(**data.get("process", {})),
            status=StatusConfig(**data.get("status", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        logging_section: dict[str, object] = {"level": self.logging.level}
        if self.logging.file:
            logging_section["file"] = self.logging.file
        return {
            "relay": {
                "default_directory": self.relay.default_directory,
                "home_directory": self.relay.home_directory,
            },
            "process": {
                "binary": self.process.binary,
                "flags": list(self.process.flags),
                "kill_after_seconds": self.process.kill_after_seconds,
                "env_overrides": dict(self.process.env_overrides),
            },
            "status": {
                "update_interval_seconds": self.status.update_interval_seconds,
                "max_display_length": self.status.max_display_length,
                "failure_tail_length": self.status.failure_tail_length,
                "message_limit": self.status.message_limit,
                "task_summary_length": self.status.task_summary_length,
            },
            "logging": logging_section,
        }

    def apply_env(self, env: Mapping[str, str]) -> CourierConfig:
        """Overlay environment variables onto the loaded file values."""
        if env.get("DEFAULT_DIR"):
            self.relay.default_directory = env["DEFAULT_DIR"]
        if env.get("HOME"):
            self.relay.home_directory = env["HOME"]
        if env.get("COURIER_LOG_LEVEL"):
            self.logging.level = env["COURIER_LOG_LEVEL"]
        if env.get("COURIER_LOG_FILE"):
            self.logging.file = env["COURIER_LOG_FILE"]
        return self


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: CourierConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["relay", "process", "status", "logging"]
    for section in section_order:
        tables: dict[str, dict] = {}
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            if isinstance(value, dict):
                tables[key] = value
                continue
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
        for name, table in tables.items():
            lines.append(f"[{section}.{name}]")
            for key, value in table.items():
                lines.append(f"{json.dumps(key)} = {_toml_value(value)}")
            lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path, env: Mapping[str, str] | None = None) -> CourierConfig:
    if path.exists():
        config = CourierConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))
    else:
        config = CourierConfig.default()
    if env is not None:
        config.apply_env(env)
    return config


def save_config(path: Path, config: CourierConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")


def load_environment(env_file: Path | None = None) -> None:
    """Load ``.env`` into ``os.environ`` without overriding variables already set."""
    load_dotenv(env_file or Path(ENV_FILE), override=False)


def fetch_secret(
    key: str,
    default: str | None = None,
    env_file: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment, falling back to the ``.env`` file."""
    value = os.environ.get(key)
    if value is not None:
        return value
    path = env_file or Path(ENV_FILE)
    if path.exists():
        stored = dotenv_values(path).get(key)
        if stored is not None:
            return stored
    return default
