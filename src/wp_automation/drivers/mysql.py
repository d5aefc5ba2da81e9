"""MySQL-family drivers built on PyMySQL."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Generator, Mapping

import pymysql
from pymysql.constants import ER
from pymysql.cursors import Cursor
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import DatabaseConnectionConfig
from ..validation import ValidationError, validate_database_name
from .base import (
    ConnectionCheck,
    DatabaseConnectionError,
    DatabaseCreation,
    DatabaseDriverError,
    DatabaseDrop,
    DatabaseExistsError,
    ensure_not_protected,
)

logger = logging.getLogger(__name__)

Connect = Callable[..., Any]


@dataclass(slots=True, frozen=True)
class Dialect:
    driver_type: str
    display_name: str
    charset: str = "utf8mb4"
    collation: str = "utf8mb4_unicode_ci"
    version_marker: str | None = None


MYSQL = Dialect(driver_type="mysql", display_name="MySQL")
MARIADB = Dialect(driver_type="mariadb", display_name="MariaDB", version_marker="mariadb")


class MySQLServer:
    """Connection handling and SQL shared by every MySQL-compatible dialect."""

    def __init__(
        self,
        config: DatabaseConnectionConfig,
        connect: Connect = pymysql.connect,
        connect_timeout: int = 10,
        connect_attempts: int = 3,
    ) -> None:
        self.config = config
        self._connect = connect
        self._connect_timeout = connect_timeout
        self._connect_attempts = connect_attempts

    def _open(self) -> Any:
        connect_args = {
            "host": self.config.host,
            "port": self.config.port,
            "user": self.config.user,
            "password": self.config.password,
            "connect_timeout": self._connect_timeout,
            "charset": "utf8mb4",
        }
        logger.debug("Connecting to %s:%s as '%s'", self.config.host, self.config.port, self.config.user)
        retrying = Retrying(
            stop=stop_after_attempt(self._connect_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(pymysql.err.OperationalError),
            reraise=True,
        )
        try:
            return retrying(self._connect, **connect_args)
        except pymysql.MySQLError as exc:
            raise DatabaseConnectionError(
                f"Could not connect to {self.config.host}:{self.config.port}: {exc}"
            ) from exc

    @contextmanager
    def cursor(self) -> Generator[Cursor, None, None]:
        connection = self._open()
        cursor = None
        try:
            cursor = connection.cursor()
            yield cursor
        finally:
            if cursor is not None:
                cursor.close()
            connection.close()

    @staticmethod
    def version(cursor: Cursor) -> str:
        cursor.execute("SELECT VERSION()")
        row = cursor.fetchone()
        return str(row[0]) if row else "unknown"

    @staticmethod
    def schema_exists(cursor: Cursor, name: str) -> bool:
        cursor.execute(
            "SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = %s",
            (name,),
        )
        return cursor.fetchone() is not None

    @staticmethod
    def execute_ddl(cursor: Cursor, statement: str) -> None:
        logger.debug("Executing SQL: %s", statement)
        cursor.execute(statement)


def _checked_name(name: str) -> str:
    result = validate_database_name(name)
    if not result.valid:
        raise ValidationError(result.error)
    return result.sanitized or name


class MySQLCompatibleDriver:
    """Database driver for one MySQL-compatible dialect.

    Dialect differences live in ``Dialect``; the shared SQL and connection
    handling is delegated to ``MySQLServer``.
    """

    def __init__(
        self,
        dialect: Dialect,
        config: DatabaseConnectionConfig,
        connect: Connect = pymysql.connect,
        connect_timeout: int = 10,
        connect_attempts: int = 3,
    ) -> None:
        self._dialect = dialect
        self._connect = connect
        self._connect_timeout = connect_timeout
        self._connect_attempts = connect_attempts
        self._server = self._build_server(config)
        logger.info(
            "%s driver initialised for %s:%s as '%s'",
            dialect.display_name,
            config.host,
            config.port,
            config.user,
        )

    def _build_server(self, config: DatabaseConnectionConfig) -> MySQLServer:
        return MySQLServer(
            config,
            connect=self._connect,
            connect_timeout=self._connect_timeout,
            connect_attempts=self._connect_attempts,
        )

    @property
    def driver_type(self) -> str:
        return self._dialect.driver_type

    @property
    def display_name(self) -> str:
        return self._dialect.display_name

    def test_connection(self) -> ConnectionCheck:
        logger.info("Testing %s connection", self.display_name)
        try:
            with self._server.cursor() as cursor:
                version = self._server.version(cursor)
        except DatabaseConnectionError:
            raise
        except pymysql.MySQLError as exc:
            raise DatabaseConnectionError(f"Could not query {self.display_name} server: {exc}") from exc

        marker = self._dialect.version_marker
        if marker and marker not in version.lower():
            logger.warning("%s driver connected to a server reporting version '%s'", self.display_name, version)
        logger.info("%s connection succeeded (version %s)", self.display_name, version)
        return ConnectionCheck(
            driver=self.driver_type,
            version=version,
            message=f"{self.display_name} connection succeeded (v{version})",
        )

    def create_database(self, name: str) -> DatabaseCreation:
        ensure_not_protected(name)
        database_name = _checked_name(name)
        logger.info("Creating database '%s'", database_name)
        dialect = self._dialect
        try:
            with self._server.cursor() as cursor:
                if self._server.schema_exists(cursor, database_name):
                    raise DatabaseExistsError(f"Database '{database_name}' already exists")
                self._server.execute_ddl(
                    cursor,
                    f"CREATE DATABASE `{database_name}` CHARACTER SET {dialect.charset} COLLATE {dialect.collation}",
                )
        except pymysql.MySQLError as exc:
            if exc.args and exc.args[0] == ER.DB_CREATE_EXISTS:
                raise DatabaseExistsError(f"Database '{database_name}' already exists") from exc
            raise DatabaseDriverError(f"Failed to create database '{database_name}': {exc}") from exc
        logger.info("Database '%s' created", database_name)
        return DatabaseCreation(
            driver=self.driver_type,
            database_name=database_name,
            charset=dialect.charset,
            collation=dialect.collation,
        )

    def database_exists(self, name: str) -> bool:
        database_name = _checked_name(name)
        try:
            with self._server.cursor() as cursor:
                exists = self._server.schema_exists(cursor, database_name)
        except pymysql.MySQLError as exc:
            raise DatabaseDriverError(f"Failed to look up database '{database_name}': {exc}") from exc
        logger.debug("Database '%s' exists: %s", database_name, exists)
        return exists

    def drop_database(self, name: str) -> DatabaseDrop:
        ensure_not_protected(name)
        database_name = _checked_name(name)
        logger.warning("Dropping database '%s'", database_name)
        try:
            with self._server.cursor() as cursor:
                if not self._server.schema_exists(cursor, database_name):
                    logger.info("Database '%s' not found; nothing to drop", database_name)
                    return DatabaseDrop(driver=self.driver_type, database_name=database_name, existed=False)
                self._server.execute_ddl(cursor, f"DROP DATABASE `{database_name}`")
        except pymysql.MySQLError as exc:
            if exc.args and exc.args[0] == ER.DB_DROP_EXISTS:
                return DatabaseDrop(driver=self.driver_type, database_name=database_name, existed=False)
            raise DatabaseDriverError(f"Failed to drop database '{database_name}': {exc}") from exc
        logger.info("Database '%s' dropped", database_name)
        return DatabaseDrop(driver=self.driver_type, database_name=database_name, existed=True)

    def get_config(self) -> DatabaseConnectionConfig:
        return self._server.config

    def set_config(self, changes: Mapping[str, Any]) -> None:
        updated = self._server.config.merged(dict(changes))
        self._server = self._build_server(updated)
        logger.info("%s configuration updated: %s", self.display_name, updated.masked())
