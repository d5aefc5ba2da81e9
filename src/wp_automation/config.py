"""Configuration loading utilities for the WordPress automation tool."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .validation import validate_connection_params


def _env_port() -> int:
    raw = os.getenv("DB_PORT", "3306")
    try:
        return int(raw)
    except ValueError:
        return 3306


class DatabaseConnectionConfig(BaseModel):
    """Credentials used to reach the database server."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default_factory=lambda: os.getenv("DB_HOST", "localhost"))
    port: int = Field(default_factory=_env_port)
    user: str = Field(default_factory=lambda: os.getenv("DB_USER", "root"))
    password: str = Field(default_factory=lambda: os.getenv("DB_PASSWORD", ""), repr=False)

    @model_validator(mode="after")
    def _validate_params(self) -> "DatabaseConnectionConfig":
        result = validate_connection_params(
            {"host": self.host, "port": self.port, "user": self.user, "password": self.password}
        )
        if not result.valid:
            raise ValueError(result.error)
        return self

    def merged(self, changes: Dict[str, Any]) -> "DatabaseConnectionConfig":
        """Return a re-validated copy with ``changes`` applied."""
        payload = self.model_dump()
        payload.update({key: value for key, value in changes.items() if value is not None})
        return DatabaseConnectionConfig.model_validate(payload)

    def masked(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port, "user": self.user, "password": "***"}


class DatabaseConfig(BaseModel):
    driver: str = Field("mysql", description="Database driver tag (mysql or mariadb)")
    connection: DatabaseConnectionConfig = Field(default_factory=DatabaseConnectionConfig)
    connect_timeout: int = Field(10, ge=1, description="Seconds to wait for a connection")
    connect_attempts: int = Field(3, ge=1, description="Connection attempts before giving up")

    @model_validator(mode="before")
    @classmethod
    def _lift_connection_fields(cls, values: Any) -> Any:
        # Allow host/port/user/password at the top of the database section.
        if not isinstance(values, dict):
            return values
        values = dict(values)
        connection = dict(values.pop("connection", None) or {})
        for key in ("host", "port", "user", "password"):
            if key in values:
                connection[key] = values.pop(key)
        if connection:
            values["connection"] = connection
        return values

    @field_validator("driver")
    @classmethod
    def _normalize_driver(cls, value: str) -> str:
        return value.strip().lower()


class PathsConfig(BaseModel):
    wordpress_base: Optional[Path] = Field(
        default=None,
        description="Template WordPress tree copied into every new project",
    )
    temp_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Root for archive staging directories",
    )


def _parse_mode(value: Any) -> int:
    if isinstance(value, str):
        return int(value.strip().removeprefix("0o"), 8)
    return int(value)


class PermissionsConfig(BaseModel):
    directory_mode: int = 0o755
    file_mode: int = 0o644
    config_mode: int = 0o640

    @field_validator("directory_mode", "file_mode", "config_mode", mode="before")
    @classmethod
    def _octal(cls, value: Any) -> int:
        mode = _parse_mode(value)
        if not 0 <= mode <= 0o777:
            raise ValueError(f"Permission mode {value!r} is outside 000-777")
        return mode


class VhostConfig(BaseModel):
    server: Literal["apache", "nginx"] = "apache"
    port: int = Field(80, ge=1, le=65535)
    tld: str = Field("local", description="Top-level label appended to suggested server names")
    php_fpm_socket: str = Field("unix:/run/php/php-fpm.sock", description="FastCGI target for nginx blocks")

    @field_validator("tld")
    @classmethod
    def _strip_dots(cls, value: str) -> str:
        stripped = value.strip().strip(".").lower()
        if not stripped:
            raise ValueError("vhost.tld cannot be empty")
        return stripped


class RollbackConfig(BaseModel):
    safe_roots: list[Path] = Field(
        default_factory=list,
        description="Extra directories under which rollback may delete created trees",
    )


class AutomationConfig(BaseModel):
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    vhost: VhostConfig = Field(default_factory=VhostConfig)
    rollback: RollbackConfig = Field(default_factory=RollbackConfig)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "AutomationConfig":
        return cls.model_validate(raw or {})

    @classmethod
    def from_yaml(cls, path: Path) -> "AutomationConfig":
        data = yaml.safe_load(path.read_text())
        config = cls.from_dict(data)
        base = config.paths.wordpress_base
        if base is not None and not base.is_absolute():
            config.paths.wordpress_base = (path.parent / base).resolve()
        return config


def load_config(path: str | Path | None = None) -> AutomationConfig:
    """Load an AutomationConfig from a YAML file, or defaults when no path is given."""
    if path is None:
        return AutomationConfig()
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    return AutomationConfig.from_yaml(config_path)
