import asyncio
import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from courier.cli import build_runtime, cli, serve
from courier.config import CourierConfig, load_config
from courier.transport.base import MessageHandler, Transport, TransportError


class ClosingTransport(Transport):
    """Transport that stops by itself after it has been started."""

    def __init__(self) -> None:
        self.started = False
        self.closed = False

    @property
    def bot_tag(self) -> str | None:
        return None

    async def start(self, handler: MessageHandler) -> None:
        _ = handler
        self.started = True

    async def close(self) -> None:
        self.closed = True


class RejectedTransport(ClosingTransport):
    """Transport whose login is refused."""

    async def start(self, handler: MessageHandler) -> None:
        await super().start(handler)
        raise TransportError("Discord connection failed: Improper token has been passed.")


def test_init_writes_config(tmp_path: Path) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["init", "--default-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        config = load_config(Path("courier.toml"))
        assert config.relay.default_directory == str(tmp_path.resolve())
        assert "Default directory" in result.output


def test_parse_command_prints_resolved_request(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    project = tmp_path / "proj"
    project.mkdir()
    monkeypatch.setenv("DEFAULT_DIR", str(tmp_path))
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        with_path = runner.invoke(cli, ["parse", f"{project}: run tests"])
        without_path = runner.invoke(cli, ["parse", "fix the login bug"])

    assert json.loads(with_path.output) == {"directory": str(project), "task": "run tests"}
    assert json.loads(without_path.output) == {
        "directory": str(tmp_path),
        "task": "fix the login bug",
    }


def test_config_command_prints_effective_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DEFAULT_DIR", "/srv/work")
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["config"])

    payload = json.loads(result.output)
    assert payload["relay"]["default_directory"] == "/srv/work"
    assert payload["status"]["update_interval_seconds"] == 2.0


def test_run_without_token_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1
    assert "DISCORD_TOKEN environment variable is required" in result.output


def test_serve_stops_when_transport_closes(tmp_path: Path) -> None:
    config = CourierConfig.default()
    config.relay.default_directory = str(tmp_path)
    runtime = build_runtime(tmp_path / "courier.toml", config)
    transport = ClosingTransport()

    asyncio.run(asyncio.wait_for(serve(runtime, transport), timeout=2.0))

    assert transport.started is True
    assert transport.closed is True
    assert len(runtime.registry) == 0


def test_run_reports_transport_failure_without_traceback(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    from courier.transport import discord_client

    transports: list[RejectedTransport] = []

    def _transport(token: str) -> RejectedTransport:
        assert token == "bad-token"
        transports.append(RejectedTransport())
        return transports[-1]

    monkeypatch.setenv("DISCORD_TOKEN", "bad-token")
    monkeypatch.setenv("DEFAULT_DIR", str(tmp_path))
    monkeypatch.setattr(discord_client, "DiscordTransport", _transport)
    monkeypatch.setattr("courier.cli.setup_logging", lambda config: None)
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1
    assert "Error: Discord connection failed: Improper token" in result.output
    assert not isinstance(result.exception, TransportError)
    assert transports[0].closed is True


def test_discord_login_failure_becomes_transport_error() -> None:
    import discord

    from courier.transport.discord_client import DiscordTransport

    class RefusingClient:
        user = None

        def event(self, coro):
            return coro

        async def start(self, token: str) -> None:
            raise discord.LoginFailure("Improper token has been passed.")

        def is_closed(self) -> bool:
            return True

    transport = DiscordTransport("bad-token", client=RefusingClient())  # type: ignore[arg-type]

    async def _handler(message) -> None:
        _ = message

    with pytest.raises(TransportError, match="Improper token"):
        asyncio.run(transport.start(_handler))
