"""Domain models for WordPress project provisioning."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Optional, Union

from .config import DatabaseConnectionConfig


class PipelineStep(str, Enum):
    COPY = "copy"
    CONFIGURE = "configure"
    CREATE_DATABASE = "database"
    INSTALL_THEMES = "themes"
    INSTALL_PLUGINS = "plugins"
    SET_PERMISSIONS = "permissions"
    EMIT_VHOST = "vhost"


# Status-only tags reported alongside the pipeline steps.
ERROR_STATUS = "error"
ROLLBACK_STATUS = "rollback"


@dataclass(slots=True, frozen=True)
class ProvisioningRequest:
    """User-facing request payload for provisioning a WordPress project."""

    project_name: str
    database_name: str
    destination_dir: Path
    themes_dir: Optional[Path] = None
    plugins_dir: Optional[Path] = None
    server_name: Optional[str] = None
    database_override: Optional[DatabaseConnectionConfig] = None

    @property
    def project_dir(self) -> Path:
        return Path(self.destination_dir) / self.project_name


@dataclass(slots=True, frozen=True)
class StatusUpdate:
    """Progress notification emitted before and after each step.

    ``success`` is ``None`` while the step is still running.
    """

    step: str
    message: str
    success: Optional[bool] = None


@dataclass(slots=True, frozen=True)
class PipelineResult:
    success: bool
    message: str
    vhost_text: Optional[str] = None
    hosts_entry_text: Optional[str] = None
    server_name: Optional[str] = None
    project_dir: Optional[Path] = None
    rollback_errors: tuple[str, ...] = ()


class RollbackActionKind(str, Enum):
    DIRECTORY_CREATED = "directory"
    DATABASE_CREATED = "database"
    FILE_CREATED = "file"


@dataclass(slots=True, frozen=True)
class DirectoryCreated:
    kind: ClassVar[RollbackActionKind] = RollbackActionKind.DIRECTORY_CREATED

    path: Path

    @property
    def description(self) -> str:
        return f"Remove directory {self.path}"


@dataclass(slots=True, frozen=True)
class DatabaseCreated:
    kind: ClassVar[RollbackActionKind] = RollbackActionKind.DATABASE_CREATED

    database_name: str
    driver_type: str
    connection: DatabaseConnectionConfig = field(repr=False)

    @property
    def description(self) -> str:
        return f"Drop database {self.database_name}"


@dataclass(slots=True, frozen=True)
class FileCreated:
    kind: ClassVar[RollbackActionKind] = RollbackActionKind.FILE_CREATED

    path: Path

    @property
    def description(self) -> str:
        return f"Remove file {self.path}"


RollbackAction = Union[DirectoryCreated, DatabaseCreated, FileCreated]


@dataclass(slots=True, frozen=True)
class RollbackOutcome:
    success: bool
    errors: tuple[str, ...] = ()
    actions_attempted: int = 0


class ArchiveKind(str, Enum):
    THEME = "theme"
    PLUGIN = "plugin"

    @property
    def content_dir(self) -> str:
        return f"{self.value}s"


@dataclass(slots=True)
class ArchiveInstallResult:
    archive: Path
    success: bool
    message: str
    name: Optional[str] = None
    destination: Optional[Path] = None


@dataclass(slots=True)
class BatchInstallResult:
    kind: ArchiveKind
    success: bool
    message: str
    results: list[ArchiveInstallResult] = field(default_factory=list)

    @property
    def installed_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.results if not result.success)


@dataclass(slots=True, frozen=True)
class PermissionsReport:
    directories: int
    files: int


@dataclass(slots=True, frozen=True)
class WpConfigInfo:
    db_name: str
    db_user: str
    db_password: str = field(repr=False)
    db_host: str
    table_prefix: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ProjectInfo:
    path: Path
    name: str
    is_valid: bool
    wp_config: Optional[WpConfigInfo] = None


@dataclass(slots=True, frozen=True)
class ProjectDeletionResult:
    """Outcome of deleting a project tree and, optionally, its database."""

    success: bool
    message: str
    database_deleted: bool = False
    files_deleted: bool = False
    wp_config: Optional[WpConfigInfo] = None
