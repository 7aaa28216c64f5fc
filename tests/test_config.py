import os
import tomllib
from pathlib import Path

import pytest

from courier import __version__
from courier.config import (
    CourierConfig,
    dumps_toml,
    fetch_secret,
    load_config,
    load_environment,
    save_config,
)


def test_default_config_values() -> None:
    config = CourierConfig.default()

    assert config.process.binary == "claude"
    assert config.process.flags == ["-p", "--dangerously-skip-permissions"]
    assert config.process.env_overrides == {"CLAUDE_DISABLE_INTERACTIVITY": "1"}
    assert config.status.update_interval_seconds == 2.0
    assert config.status.max_display_length == 1900
    assert config.status.failure_tail_length == 1500
    assert config.status.message_limit == 2000


def test_load_missing_config_returns_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.toml")

    assert config.status.update_interval_seconds == 2.0


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "courier.toml"
    config = CourierConfig.default()
    config.relay.default_directory = "/srv/projects"
    config.process.kill_after_seconds = 2.5
    config.process.env_overrides["EXTRA_FLAG"] = "yes"
    config.status.update_interval_seconds = 1.5
    config.logging.file = "~/courier.log"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.relay.default_directory == "/srv/projects"
    assert loaded.process.kill_after_seconds == 2.5
    assert loaded.process.env_overrides == {
        "CLAUDE_DISABLE_INTERACTIVITY": "1",
        "EXTRA_FLAG": "yes",
    }
    assert loaded.status.update_interval_seconds == 1.5
    assert loaded.logging.file == "~/courier.log"


def test_dumps_toml_contains_sections() -> None:
    rendered = dumps_toml(CourierConfig.default())

    assert "[relay]" in rendered
    assert "[process]" in rendered
    assert "[process.env_overrides]" in rendered
    assert "[status]" in rendered
    assert "[logging]" in rendered
    assert tomllib.loads(rendered)["status"]["message_limit"] == 2000


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    config_path = tmp_path / "courier.toml"
    save_config(config_path, CourierConfig.default())

    config = load_config(
        config_path,
        env={"DEFAULT_DIR": "/work", "HOME": "/home/tester", "COURIER_LOG_LEVEL": "DEBUG"},
    )

    assert config.relay.default_directory == "/work"
    assert config.relay.home_directory == "/home/tester"
    assert config.logging.level == "DEBUG"


def test_fetch_secret_prefers_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DISCORD_TOKEN=from-file\n", encoding="utf-8")

    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    assert fetch_secret("DISCORD_TOKEN", env_file=env_file) == "from-file"

    monkeypatch.setenv("DISCORD_TOKEN", "from-env")
    assert fetch_secret("DISCORD_TOKEN", env_file=env_file) == "from-env"


def test_fetch_secret_default(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("COURIER_MISSING_SECRET", raising=False)

    assert fetch_secret("COURIER_MISSING_SECRET", "fallback", env_file=tmp_path / ".env") == (
        "fallback"
    )


def test_load_environment_does_not_override(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DEFAULT_DIR=/from-file\nCOURIER_ONLY_IN_FILE=1\n", encoding="utf-8")
    monkeypatch.setenv("DEFAULT_DIR", "/from-env")
    monkeypatch.delenv("COURIER_ONLY_IN_FILE", raising=False)

    load_environment(env_file)

    assert os.environ["DEFAULT_DIR"] == "/from-env"
    assert os.environ["COURIER_ONLY_IN_FILE"] == "1"
    monkeypatch.delenv("COURIER_ONLY_IN_FILE")


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
