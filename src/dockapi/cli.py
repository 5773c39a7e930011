"""dockapi command line interface."""

import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from dockapi.config import ClientConfig, LoggingConfig, load_config
from dockapi.logging import configure_logging, get_logger

app = typer.Typer(
    name="dockapi",
    help="dockapi: a client for the container engine HTTP API",
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__, component="cli")


def _setup_logging(
    log_level: Optional[str],
    log_format: Optional[str],
    settings: Optional[LoggingConfig] = None,
) -> None:
    """Configure logging; command-line values win over the config file."""
    settings = settings or LoggingConfig()
    configure_logging(
        log_level=log_level or settings.log_level,
        log_format=log_format or settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
    )


def _load_config(config_path: Optional[Path], log_level: Optional[str], log_format: Optional[str]) -> ClientConfig:
    config = load_config(config_path)
    _setup_logging(log_level, log_format, config.logging)
    return config


def _connect(config: ClientConfig):
    from dockapi.connection import Connection

    return Connection(config)


LOG_LEVEL_OPTION = typer.Option(
    os.getenv("DOCKAPI_LOG_LEVEL"),
    "--log-level",
    "-l",
    help="Logging level (DEBUG, INFO, WARNING, ERROR); overrides the config file",
)
LOG_FORMAT_OPTION = typer.Option(
    os.getenv("DOCKAPI_LOG_FORMAT"),
    "--log-format",
    help="Log format (console or json); overrides the config file",
)
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Client configuration file (YAML)",
)


@app.command()
def version(
    engine: bool = typer.Option(False, "--engine", "-e", help="Also query the engine's version"),
    config_path: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    log_format: Optional[str] = LOG_FORMAT_OPTION,
):
    """Show version information."""
    from dockapi import __version__
    from dockapi.errors import DockerError

    client_config = _load_config(config_path, log_level, log_format)
    console.print(f"dockapi version {__version__}")
    if not engine:
        return

    try:
        with _connect(client_config) as connection:
            info = connection.version()
    except DockerError as e:
        logger.error("engine_version_failed", error=e.message)
        console.print(f"[red]✗ Engine unavailable: {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title="Engine")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in ("Version", "ApiVersion", "MinAPIVersion", "Os", "Arch", "KernelVersion"):
        if key in info:
            table.add_row(key, str(info[key]))
    console.print(table)


@app.command()
def ping(
    config_path: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    log_format: Optional[str] = LOG_FORMAT_OPTION,
):
    """Check that the engine answers."""
    client_config = _load_config(config_path, log_level, log_format)
    with _connect(client_config) as connection:
        if connection.ping():
            console.print(f"[green]✓ Engine reachable at {connection.config.url}[/green]")
            return
        console.print(f"[red]✗ No answer from {connection.config.url}[/red]")
    raise typer.Exit(1)


@app.command()
def config(
    command: List[str] = typer.Argument(..., help="A docker run/create command line"),
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    log_format: Optional[str] = LOG_FORMAT_OPTION,
):
    """Print the container configuration a command line produces.

    Pass the command quoted, or after ``--`` so its flags are not read here:

        dockapi config -- docker run -it -p 8080:80 nginx
    """
    from dockapi.container import ContainerConfig
    from dockapi.errors import ArgumentError

    _setup_logging(log_level, log_format)
    try:
        document = ContainerConfig.from_cli(command[0] if len(command) == 1 else command)
    except ArgumentError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)
    console.print_json(document.to_json())


@app.command()
def context(
    directory: Path = typer.Argument(Path("."), help="Build context directory"),
    archive: Optional[Path] = typer.Option(None, "--archive", "-o", help="Also write the context tar here"),
    log_level: Optional[str] = LOG_LEVEL_OPTION,
    log_format: Optional[str] = LOG_FORMAT_OPTION,
):
    """List the files an image build would send."""
    from dockapi.context import create_dir_tar, iter_context
    from dockapi.errors import ArgumentError

    _setup_logging(log_level, log_format)
    try:
        files = [relative for _, relative in iter_context(directory)]
    except ArgumentError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Build context: {directory}")
    table.add_column("File", style="cyan")
    for relative in files:
        table.add_row(relative)
    console.print(table)
    console.print(f"[dim]{len(files)} file(s)[/dim]")

    if archive:
        with open(archive, "wb") as output:
            create_dir_tar(directory, output)
        console.print(f"[green]✓ Wrote {archive}[/green]")


if __name__ == "__main__":
    app()
