from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union, runtime_checkable

from ..config import DatabaseConnectionConfig

logger = logging.getLogger(__name__)

PROTECTED_DATABASES = frozenset({"mysql", "information_schema", "performance_schema", "sys"})


class DatabaseDriverError(RuntimeError):
    """Base error for database driver failures."""


class DatabaseConnectionError(DatabaseDriverError):
    """Raised when the database server cannot be reached or rejects the credentials."""


class DatabaseExistsError(DatabaseDriverError):
    """Raised when creating a database that already exists."""


class ProtectedDatabaseError(DatabaseDriverError):
    """Raised when an operation targets a system database."""


class UnsupportedDriverError(KeyError):
    def __str__(self) -> str:  # noqa: D401 - KeyError quotes its argument otherwise
        return str(self.args[0]) if self.args else "unsupported driver"


@dataclass(slots=True, frozen=True)
class ConnectionCheck:
    driver: str
    version: str
    message: str


@dataclass(slots=True, frozen=True)
class DatabaseCreation:
    driver: str
    database_name: str
    charset: str
    collation: str


@dataclass(slots=True, frozen=True)
class DatabaseDrop:
    driver: str
    database_name: str
    existed: bool


@runtime_checkable
class DatabaseDriver(Protocol):
    """Capability surface shared by every SQL dialect."""

    driver_type: str
    display_name: str

    def test_connection(self) -> ConnectionCheck: ...

    def create_database(self, name: str) -> DatabaseCreation: ...

    def database_exists(self, name: str) -> bool: ...

    def drop_database(self, name: str) -> DatabaseDrop: ...

    def get_config(self) -> DatabaseConnectionConfig: ...

    def set_config(self, changes: Mapping[str, Any]) -> None: ...


def ensure_not_protected(name: str) -> None:
    if name.strip().lower() in PROTECTED_DATABASES:
        raise ProtectedDatabaseError(f"Refusing to touch system database '{name}'")


DriverBuilder = Callable[[DatabaseConnectionConfig], DatabaseDriver]
ConnectionInput = Union[DatabaseConnectionConfig, Mapping[str, Any], None]


class DatabaseDriverFactory:
    """Registry of dialect builders keyed by driver tag."""

    def __init__(self) -> None:
        self._registry: Dict[str, DriverBuilder] = {}
        self._display_names: Dict[str, str] = {}

    def register(self, driver_type: str, builder: DriverBuilder, display_name: Optional[str] = None) -> None:
        key = driver_type.lower()
        self._registry[key] = builder
        self._display_names[key] = display_name or driver_type

    def available(self) -> list[str]:
        return list(self._registry)

    def display_name(self, driver_type: str) -> str:
        return self._display_names.get(driver_type.lower(), driver_type)

    def create(self, driver_type: str, config: ConnectionInput = None) -> DatabaseDriver:
        builder = self._registry.get(driver_type.lower())
        if builder is None:
            known = ", ".join(sorted(self._registry)) or "none"
            raise UnsupportedDriverError(f"Unsupported database driver '{driver_type}' (available: {known})")
        if config is None:
            resolved = DatabaseConnectionConfig()
        elif isinstance(config, DatabaseConnectionConfig):
            resolved = config
        else:
            resolved = DatabaseConnectionConfig().merged(dict(config))
        logger.debug("Creating '%s' driver for %s", driver_type, resolved.masked())
        return builder(resolved)
