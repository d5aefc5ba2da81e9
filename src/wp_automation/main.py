"""CLI entrypoint for WordPress project automation."""
from __future__ import annotations

import json
import logging
import os
import signal
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv

from .config import AutomationConfig, load_config
from .drivers import DatabaseDriverError
from .models import ProvisioningRequest, StatusUpdate
from .pipeline import CancellationToken
from .service import ProvisioningService


def _configure_logging() -> None:
    env_level = os.getenv("WP_AUTOMATION_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, env_level, None)
    if not isinstance(level, int):
        level = logging.INFO
        logging.warning(
            "Unrecognized WP_AUTOMATION_LOG_LEVEL '%s'; defaulting to INFO",
            env_level,
        )
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")


load_dotenv(Path.cwd() / ".env", override=False)
_configure_logging()

app = typer.Typer(help="Local WordPress project automation")


def _config_option() -> Any:
    return typer.Option(None, "--config", envvar="WP_AUTOMATION_CONFIG", help="Path to automation config YAML")


class EchoProgressSink:
    """Prints step status lines as the pipeline reports them."""

    def __init__(self) -> None:
        self.percent = 0

    def status(self, update: StatusUpdate) -> None:
        if update.success is None:
            typer.echo(f"[{update.step}] {update.message}...")
        elif update.success:
            typer.secho(f"[{update.step}] {update.message}", fg=typer.colors.GREEN)
        else:
            typer.secho(f"[{update.step}] {update.message}", fg=typer.colors.YELLOW, err=True)

    def progress(self, percent: int) -> None:
        self.percent = percent
        typer.echo(f"  {percent}%")


def _fail(message: str, code: int = 1) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


def _load(config: Optional[Path]) -> AutomationConfig:
    try:
        return load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        raise _fail(f"Invalid configuration: {exc}") from exc


def _default_database_name(project_name: str) -> str:
    return project_name.replace("-", "_")


@app.command("create-project")
def create_project(
    name: str,
    destination: Path = typer.Option(..., "--destination", "-d", help="Directory the project is created in"),
    database: Optional[str] = typer.Option(None, help="Database name (defaults to the project name)"),
    themes: Optional[Path] = typer.Option(None, help="Directory of theme archives to install"),
    plugins: Optional[Path] = typer.Option(None, help="Directory of plugin archives to install"),
    server_name: Optional[str] = typer.Option(None, help="Virtual host name, e.g. my-site.local"),
    db_host: Optional[str] = typer.Option(None, help="Override the configured database host"),
    db_port: Optional[int] = typer.Option(None, help="Override the configured database port"),
    db_user: Optional[str] = typer.Option(None, help="Override the configured database user"),
    db_password: Optional[str] = typer.Option(None, help="Override the configured database password"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Provision a new local WordPress project."""

    automation_config = _load(config)
    service = ProvisioningService(automation_config)

    overrides: dict[str, Any] = {"host": db_host, "port": db_port, "user": db_user, "password": db_password}
    database_override = None
    if any(value is not None for value in overrides.values()):
        try:
            database_override = service.get_database_config().merged(overrides)
        except ValueError as exc:
            raise _fail(f"Invalid database settings: {exc}") from exc

    request = ProvisioningRequest(
        project_name=name,
        database_name=database or _default_database_name(name),
        destination_dir=destination.expanduser(),
        themes_dir=themes,
        plugins_dir=plugins,
        server_name=server_name,
        database_override=database_override,
    )

    token = CancellationToken()

    def _cancel(signum: int, frame: Any) -> None:
        typer.secho("Cancelling after the current step...", fg=typer.colors.YELLOW, err=True)
        token.cancel()

    previous = signal.signal(signal.SIGINT, _cancel)
    try:
        result = service.create_project(request, sink=EchoProgressSink(), token=token)
    finally:
        signal.signal(signal.SIGINT, previous)

    if not result.success:
        raise _fail(result.message)

    typer.secho(result.message, fg=typer.colors.GREEN)
    if result.vhost_text:
        typer.echo("\n# Virtual host")
        typer.echo(result.vhost_text)
    if result.hosts_entry_text:
        typer.echo("\n# /etc/hosts")
        typer.echo(result.hosts_entry_text)


@app.command("test-connection")
def test_connection(config: Optional[Path] = _config_option()) -> None:
    """Check that the configured database server is reachable."""

    service = ProvisioningService(_load(config))
    try:
        check = service.test_connection()
    except DatabaseDriverError as exc:
        raise _fail(str(exc)) from exc
    typer.echo(check.message)


@app.command("suggest-server-name")
def suggest_server_name(name: str, config: Optional[Path] = _config_option()) -> None:
    """Print the virtual host name derived from a project name."""

    service = ProvisioningService(_load(config))
    typer.echo(service.suggest_server_name(name))


@app.command("inspect-project")
def inspect_project(path: Path, config: Optional[Path] = _config_option()) -> None:
    """Show whether a directory is a WordPress project and which database it uses."""

    service = ProvisioningService(_load(config))
    info = service.inspect_project(path)
    payload: dict[str, Any] = {"project": info.name, "path": str(info.path), "is_wordpress": info.is_valid}
    if info.wp_config is not None:
        payload["database"] = {
            "name": info.wp_config.db_name,
            "user": info.wp_config.db_user,
            "host": info.wp_config.db_host,
            "table_prefix": info.wp_config.table_prefix,
        }
    typer.echo(json.dumps(payload, indent=2))
    if not info.is_valid:
        raise typer.Exit(code=1)


@app.command("delete-project")
def delete_project(
    path: Path,
    keep_database: bool = typer.Option(False, "--keep-database", help="Leave the project's database in place"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Delete a WordPress project tree and, unless told otherwise, its database."""

    service = ProvisioningService(_load(config))
    if not yes:
        typer.confirm(f"Delete {path}{'' if keep_database else ' and its database'}?", abort=True)

    result = service.delete_project(path, delete_database=not keep_database)
    typer.echo(
        json.dumps(
            {
                "project": str(path),
                "success": result.success,
                "message": result.message,
                "files_deleted": result.files_deleted,
                "database_deleted": result.database_deleted,
            },
            indent=2,
        )
    )
    if not result.success:
        raise typer.Exit(code=1)


@app.command("drivers")
def list_drivers(config: Optional[Path] = _config_option()) -> None:
    """List the supported database drivers."""

    service = ProvisioningService(_load(config))
    for driver_type, display_name in service.available_drivers():
        typer.echo(f"{driver_type}\t{display_name}")


if __name__ == "__main__":
    app()
