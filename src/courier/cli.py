from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path

import click

from courier import __version__
from courier.config import (
    TOKEN_ENV_VAR,
    CourierConfig,
    fetch_secret,
    load_config,
    load_environment,
    save_config,
)
from courier.logging import get_logger, setup_logging
from courier.parser import parse_request
from courier.process.runner import ProcessRunner
from courier.sessions import SessionManager, SessionRegistry, ShutdownCoordinator
from courier.transport.base import Transport, TransportError

log = get_logger()


@dataclass(slots=True)
class Runtime:
    config_path: Path
    config: CourierConfig
    registry: SessionRegistry
    runner: ProcessRunner
    manager: SessionManager


def _resolve_config_path(config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return config_path.resolve()


def _load_config(config_value: str) -> tuple[Path, CourierConfig]:
    load_environment()
    config_path = _resolve_config_path(config_value)
    try:
        config = load_config(config_path, env=os.environ)
    except (TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    return config_path, config


def build_runtime(config_path: Path, config: CourierConfig) -> Runtime:
    registry = SessionRegistry()
    runner = ProcessRunner(
        binary=config.process.binary,
        flags=config.process.flags,
        env_overrides=config.process.env_overrides,
    )
    return Runtime(
        config_path=config_path,
        config=config,
        registry=registry,
        runner=runner,
        manager=SessionManager(config, registry, runner),
    )


async def serve(runtime: Runtime, transport: Transport) -> None:
    """Run the transport until a termination signal completes shutdown."""
    coordinator = ShutdownCoordinator(
        runtime.registry,
        transport,
        kill_after_seconds=runtime.config.process.kill_after_seconds,
    )
    coordinator.install(asyncio.get_running_loop())

    client_task = asyncio.create_task(transport.start(runtime.manager.handle_message))
    done_task = asyncio.create_task(coordinator.wait())
    finished, _ = await asyncio.wait(
        {client_task, done_task}, return_when=asyncio.FIRST_COMPLETED
    )
    if client_task in finished:
        # Transport stopped on its own; still stop any running processes.
        await coordinator.shutdown(reason="transport closed")
        done_task.cancel()
        client_task.result()
    else:
        client_task.cancel()
        await asyncio.gather(client_task, return_exceptions=True)


@click.group()
@click.version_option(__version__, prog_name="courier")
def cli() -> None:
    """Courier: relay chat task requests to a local Claude Code process."""


@cli.command("init")
@click.option("--default-dir", "default_directory", default=None)
@click.option("--config", "config_value", default="courier.toml", show_default=True)
def init_command(default_directory: str | None, config_value: str) -> None:
    config_path = _resolve_config_path(config_value)
    config = load_config(config_path)
    if default_directory:
        config.relay.default_directory = str(Path(default_directory).expanduser().resolve())
    save_config(config_path, config)
    click.echo(f"Config: {config_path}")
    click.echo(f"Default directory: {config.relay.default_directory}")


@cli.command("run")
@click.option("--config", "config_value", default="courier.toml", show_default=True)
def run_command(config_value: str) -> None:
    config_path, config = _load_config(config_value)
    token = fetch_secret(TOKEN_ENV_VAR)
    if not token:
        raise click.ClickException(
            f"{TOKEN_ENV_VAR} environment variable is required. "
            f"Create a .env file with: {TOKEN_ENV_VAR}=your_token_here"
        )
    setup_logging(config.logging)

    from courier.transport.discord_client import DiscordTransport

    log.info("Courier %s starting up", __version__)
    log.info("Default directory set to: %s", config.relay.default_directory)
    runtime = build_runtime(config_path, config)
    try:
        asyncio.run(serve(runtime, DiscordTransport(token)))
    except TransportError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("parse")
@click.argument("text")
@click.option("--config", "config_value", default="courier.toml", show_default=True)
def parse_command(text: str, config_value: str) -> None:
    _, config = _load_config(config_value)
    request = parse_request(
        text, config.relay.default_directory, config.relay.home_directory
    )
    payload = {"directory": request.directory, "task": request.task}
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("config")
@click.option("--config", "config_value", default="courier.toml", show_default=True)
def config_command(config_value: str) -> None:
    _, config = _load_config(config_value)
    click.echo(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))
