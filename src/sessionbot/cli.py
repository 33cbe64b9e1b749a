from __future__ import annotations

from functools import partial
from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ConfigError
from .credentials import FileCredentialStore
from .logging import get_logger, setup_logging
from .plugins import PluginRegistry
from .settings import BotSettings, load_settings
from .supervisor import Supervisor
from .transport import ConnectionFactory
from .transports import get_transport

logger = get_logger(__name__)

_CONFIG_OPTION = typer.Option(
    None, "--config", help="Path to sessionbot.toml (defaults to ./.sessionbot or ~/.sessionbot)."
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_settings_or_exit(config: Path | None) -> BotSettings:
    try:
        settings, _ = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    return settings


def _resolve_factory(settings: BotSettings) -> ConnectionFactory:
    if not settings.transport:
        raise ConfigError("Missing `transport` in config; name an installed transport.")
    backend = get_transport(settings.transport)
    return backend.build(settings.transports.get(settings.transport, {}))


async def serve(
    settings: BotSettings,
    factory: ConnectionFactory,
    session_ids: list[str],
) -> None:
    plugins = PluginRegistry(allowlist=settings.plugins)
    plugins.load_entrypoints()
    credentials_store = FileCredentialStore(settings.state_dir)
    if not session_ids:
        session_ids = await credentials_store.list_ids()

    async with anyio.create_task_group() as tg:
        supervisor = Supervisor(
            settings=settings,
            factory=factory,
            credentials_store=credentials_store,
            plugins=plugins,
            task_group=tg,
        )
        started = await supervisor.start_many(session_ids)
        logger.info("supervisor.ready", sessions=started)
        if not started:
            logger.warning("supervisor.idle", reason="no sessions started")
        try:
            await anyio.sleep_forever()
        finally:
            with anyio.CancelScope(shield=True):
                await supervisor.stop_all()


def run(
    config: Path | None = _CONFIG_OPTION,
    session: list[str] | None = typer.Option(
        None, "--session", "-s", help="Session id to start (repeatable)."
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
) -> None:
    """Connect the configured sessions and route their messages."""
    setup_logging(debug=debug)
    settings = _load_settings_or_exit(config)
    session_ids = list(session or settings.sessions)
    try:
        factory = _resolve_factory(settings)
        anyio.run(partial(serve, settings, factory, session_ids))
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
        raise typer.Exit(code=130) from None


def sessions(config: Path | None = _CONFIG_OPTION) -> None:
    """List sessions with persisted credentials."""
    settings = _load_settings_or_exit(config)
    store = FileCredentialStore(settings.state_dir)
    ids = anyio.run(store.list_ids)
    if not ids:
        typer.echo(f"no persisted sessions in {store.directory}")
        return
    table = Table(title=f"Sessions ({store.directory})")
    table.add_column("session")
    table.add_column("credentials")
    table.add_column("size", justify="right")
    for session_id in ids:
        path = store.path_for(session_id)
        size = path.stat().st_size if path.exists() else 0
        table.add_row(session_id, str(path), f"{size} B")
    Console().print(table)


def forget(
    session_id: str = typer.Argument(..., help="Session id whose credentials to delete."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Delete persisted credentials for a session."""
    settings = _load_settings_or_exit(config)
    store = FileCredentialStore(settings.state_dir)
    if not anyio.run(store.delete, session_id):
        typer.echo(f"error: no persisted credentials for {session_id!r}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"forgot {session_id}")


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Multi-session chat bot."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Multi-session chat bot with plugin commands and interactive buttons.",
    )
    app.callback()(app_main)
    app.command(name="run")(run)
    app.command(name="sessions")(sessions)
    app.command(name="forget")(forget)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
