"""Inspect and delete existing WordPress projects."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .config import DatabaseConnectionConfig
from .drivers import DatabaseDriverError, DatabaseDriverFactory
from .filesystem import PROTECTED_PATHS, WP_CONFIG_FILE, UnsafePathError
from .models import ProjectDeletionResult, ProjectInfo, WpConfigInfo
from .wpconfig import read_wp_config

logger = logging.getLogger(__name__)

REQUIRED_ENTRIES = (WP_CONFIG_FILE, "wp-content", "wp-includes")
DEFAULT_MYSQL_PORT = 3306


def is_wordpress_project(project_dir: Path) -> bool:
    project_dir = Path(project_dir)
    return all((project_dir / entry).exists() for entry in REQUIRED_ENTRIES)


def inspect_project(project_dir: Path) -> ProjectInfo:
    project_dir = Path(project_dir).expanduser()
    valid = project_dir.is_dir() and is_wordpress_project(project_dir)
    return ProjectInfo(
        path=project_dir,
        name=project_dir.name,
        is_valid=valid,
        wp_config=read_wp_config(project_dir) if valid else None,
    )


def connection_from_wp_config(info: WpConfigInfo) -> DatabaseConnectionConfig:
    """Build connection settings from wp-config values; ``DB_HOST`` may carry ``host:port``."""
    host, _, port_text = info.db_host.partition(":")
    try:
        port = int(port_text) if port_text else DEFAULT_MYSQL_PORT
    except ValueError:
        port = DEFAULT_MYSQL_PORT
    return DatabaseConnectionConfig(host=host or "localhost", port=port, user=info.db_user, password=info.db_password)


def _drop_project_database(info: WpConfigInfo, drivers: DatabaseDriverFactory, driver_type: str) -> tuple[bool, str]:
    try:
        driver = drivers.create(driver_type, connection_from_wp_config(info))
        if not driver.database_exists(info.db_name):
            logger.info("Database '%s' does not exist; nothing to drop", info.db_name)
            return True, "database already absent"
        driver.drop_database(info.db_name)
    except (DatabaseDriverError, KeyError, ValueError) as exc:
        logger.error("Could not drop database '%s': %s", info.db_name, exc)
        return False, f"database not deleted: {exc}"
    return True, f"database '{info.db_name}' deleted"


def _remove_project_tree(project_dir: Path) -> None:
    resolved = project_dir.resolve()
    if str(resolved) in PROTECTED_PATHS:
        raise UnsafePathError(f"Refusing to delete system directory {resolved}")
    shutil.rmtree(resolved)
    logger.info("Removed project files at %s", resolved)


def delete_project(
    project_dir: Path,
    drivers: DatabaseDriverFactory,
    driver_type: str = "mysql",
    delete_database: bool = True,
) -> ProjectDeletionResult:
    """Remove a project's files and, optionally, the database its wp-config.php names."""
    project_dir = Path(project_dir).expanduser()
    logger.info("Deleting project %s (delete database: %s)", project_dir, delete_database)

    if not project_dir.exists():
        return ProjectDeletionResult(success=False, message=f"Project does not exist: {project_dir}")
    if str(project_dir.resolve()) in PROTECTED_PATHS:
        return ProjectDeletionResult(success=False, message=f"Refusing to delete system directory {project_dir}")
    if not is_wordpress_project(project_dir):
        return ProjectDeletionResult(success=False, message=f"Not a WordPress project: {project_dir}")

    wp_config = read_wp_config(project_dir)
    database_deleted = False
    database_message: Optional[str] = None
    if delete_database:
        if wp_config is None:
            database_message = "database settings not found, database not deleted"
        else:
            database_deleted, database_message = _drop_project_database(wp_config, drivers, driver_type)

    try:
        _remove_project_tree(project_dir)
    except OSError as exc:
        logger.error("Could not delete project files at %s: %s", project_dir, exc)
        return ProjectDeletionResult(
            success=False,
            message=f"Could not delete project files: {exc}",
            database_deleted=database_deleted,
            wp_config=wp_config,
        )

    message = f"Project '{project_dir.name}' deleted"
    if database_message:
        message = f"{message} ({database_message})"
    return ProjectDeletionResult(
        success=True,
        message=message,
        database_deleted=database_deleted,
        files_deleted=True,
        wp_config=wp_config,
    )
