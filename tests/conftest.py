from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Any, Mapping, Optional

import pymysql
import pytest

from wp_automation.config import AutomationConfig, DatabaseConnectionConfig
from wp_automation.drivers import (
    ConnectionCheck,
    DatabaseCreation,
    DatabaseDriverFactory,
    DatabaseDrop,
    DatabaseExistsError,
)
from wp_automation.drivers.base import ensure_not_protected
from wp_automation.models import StatusUpdate

WP_CONFIG_TEMPLATE = """<?php
define( 'DB_NAME', 'database_name_here' );
define( 'DB_USER', 'username_here' );
define( 'DB_PASSWORD', 'password_here' );
define( 'DB_HOST', 'localhost' );

$table_prefix = 'wp_';

require_once ABSPATH . 'wp-settings.php';
"""


class FakeCursor:
    def __init__(self, server: "FakeMySQLServer") -> None:
        self._server = server
        self._row: Optional[tuple[Any, ...]] = None
        self.closed = False

    def execute(self, sql: str, params: Optional[tuple[Any, ...]] = None) -> None:
        self._server.statements.append(sql)
        if self._server.query_error is not None:
            raise self._server.query_error
        upper = sql.upper()
        if upper.startswith("SELECT VERSION"):
            self._row = (self._server.version,)
        elif "INFORMATION_SCHEMA.SCHEMATA" in upper:
            name = params[0] if params else None
            self._row = (name,) if name in self._server.databases else None
        elif upper.startswith("CREATE DATABASE"):
            name = sql.split("`")[1]
            if name in self._server.databases:
                raise pymysql.err.ProgrammingError(1007, f"Can't create database '{name}'; database exists")
            self._server.databases.add(name)
        elif upper.startswith("DROP DATABASE"):
            name = sql.split("`")[1]
            if name not in self._server.databases:
                raise pymysql.err.OperationalError(1008, f"Can't drop database '{name}'; database doesn't exist")
            self._server.databases.discard(name)

    def fetchone(self) -> Optional[tuple[Any, ...]]:
        return self._row

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, server: "FakeMySQLServer") -> None:
        self._server = server
        self.cursors: list[FakeCursor] = []
        self.closed = False

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self._server)
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True


class FakeMySQLServer:
    """Stand-in for ``pymysql.connect`` backed by a set of database names."""

    def __init__(self, databases: tuple[str, ...] = (), version: str = "8.0.36") -> None:
        self.databases = set(databases)
        self.version = version
        self.statements: list[str] = []
        self.connections: list[FakeConnection] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.connect_failures = 0
        self.query_error: Optional[Exception] = None

    def connect(self, **kwargs: Any) -> FakeConnection:
        self.connect_calls.append(kwargs)
        if self.connect_failures:
            self.connect_failures -= 1
            raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


class InMemoryDatabaseServer:
    def __init__(self) -> None:
        self.databases: set[str] = set()
        self.events: list[tuple[str, ...]] = []
        self.create_error: Optional[Exception] = None
        self.drop_error: Optional[Exception] = None


class InMemoryDriver:
    driver_type = "memory"
    display_name = "In-memory"

    def __init__(self, server: InMemoryDatabaseServer, config: DatabaseConnectionConfig) -> None:
        self._server = server
        self._config = config

    def test_connection(self) -> ConnectionCheck:
        return ConnectionCheck(driver=self.driver_type, version="1.0", message="In-memory connection succeeded (v1.0)")

    def create_database(self, name: str) -> DatabaseCreation:
        ensure_not_protected(name)
        if self._server.create_error is not None:
            raise self._server.create_error
        if name in self._server.databases:
            raise DatabaseExistsError(f"Database '{name}' already exists")
        self._server.databases.add(name)
        self._server.events.append(("create", name, self._config.user))
        return DatabaseCreation(driver=self.driver_type, database_name=name, charset="utf8mb4", collation="utf8mb4_unicode_ci")

    def database_exists(self, name: str) -> bool:
        return name in self._server.databases

    def drop_database(self, name: str) -> DatabaseDrop:
        ensure_not_protected(name)
        if self._server.drop_error is not None:
            raise self._server.drop_error
        existed = name in self._server.databases
        self._server.databases.discard(name)
        self._server.events.append(("drop", name, self._config.user))
        return DatabaseDrop(driver=self.driver_type, database_name=name, existed=existed)

    def get_config(self) -> DatabaseConnectionConfig:
        return self._config

    def set_config(self, changes: Mapping[str, Any]) -> None:
        self._config = self._config.merged(dict(changes))


class RecordingSink:
    def __init__(self) -> None:
        self.updates: list[StatusUpdate] = []
        self.percentages: list[int] = []

    def status(self, update: StatusUpdate) -> None:
        self.updates.append(update)

    def progress(self, percent: int) -> None:
        self.percentages.append(percent)

    def finished(self, step: str) -> list[StatusUpdate]:
        return [update for update in self.updates if update.step == step and update.success is not None]


def write_zip(path: Path, entries: Mapping[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as bundle:
        for name, content in entries.items():
            bundle.writestr(name, content)
    return path


def write_tar_gz(path: Path, entries: Mapping[str, str]) -> Path:
    with tarfile.open(path, "w:gz") as bundle:
        for name, content in entries.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            bundle.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def fake_mysql() -> FakeMySQLServer:
    return FakeMySQLServer()


@pytest.fixture
def memory_server() -> InMemoryDatabaseServer:
    return InMemoryDatabaseServer()


@pytest.fixture
def driver_factory(memory_server: InMemoryDatabaseServer) -> DatabaseDriverFactory:
    factory = DatabaseDriverFactory()
    factory.register("memory", lambda config: InMemoryDriver(memory_server, config), display_name="In-memory")
    return factory


@pytest.fixture
def wordpress_template(tmp_path: Path) -> Path:
    template = tmp_path / "wordpress"
    (template / "wp-content" / "themes").mkdir(parents=True)
    (template / "wp-content" / "plugins").mkdir(parents=True)
    (template / "wp-includes").mkdir()
    (template / "wp-includes" / "version.php").write_text("<?php $wp_version = '6.4';\n")
    (template / "index.php").write_text("<?php require __DIR__ . '/wp-blog-header.php';\n")
    (template / "wp-config.php").write_text(WP_CONFIG_TEMPLATE)
    return template


@pytest.fixture
def automation_config(tmp_path: Path, wordpress_template: Path) -> AutomationConfig:
    return AutomationConfig.from_dict(
        {
            "database": {"driver": "memory", "host": "localhost", "port": 3306, "user": "root", "password": "secret"},
            "paths": {"wordpress_base": str(wordpress_template), "temp_dir": str(tmp_path / "staging")},
        }
    )
