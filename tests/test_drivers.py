from __future__ import annotations

import pymysql
import pytest

from wp_automation.config import DatabaseConnectionConfig
from wp_automation.drivers import (
    DatabaseConnectionError,
    DatabaseDriver,
    DatabaseDriverError,
    DatabaseDriverFactory,
    DatabaseExistsError,
    ProtectedDatabaseError,
    UnsupportedDriverError,
    create_driver_factory,
)
from wp_automation.validation import ValidationError

from conftest import FakeMySQLServer


def _connection() -> DatabaseConnectionConfig:
    return DatabaseConnectionConfig(host="localhost", port=3306, user="root", password="secret")


def _driver(server: FakeMySQLServer, driver_type: str = "mysql", attempts: int = 1) -> DatabaseDriver:
    factory = create_driver_factory(connect=server.connect, connect_attempts=attempts)
    return factory.create(driver_type, _connection())


def _all_closed(server: FakeMySQLServer) -> bool:
    return all(conn.closed and all(cursor.closed for cursor in conn.cursors) for conn in server.connections)


def test_factory_lists_registered_dialects() -> None:
    factory = create_driver_factory()

    assert factory.available() == ["mysql", "mariadb"]
    assert factory.display_name("mariadb") == "MariaDB"
    assert isinstance(factory.create("MySQL"), DatabaseDriver)


def test_factory_unknown_type_names_requested_tag() -> None:
    factory = create_driver_factory()

    with pytest.raises(UnsupportedDriverError) as excinfo:
        factory.create("postgres")

    assert "postgres" in str(excinfo.value)
    assert "mariadb" in str(excinfo.value)


def test_factory_merges_mapping_config() -> None:
    factory = DatabaseDriverFactory()
    captured: list[DatabaseConnectionConfig] = []

    def builder(config: DatabaseConnectionConfig):
        captured.append(config)
        return object()

    factory.register("custom", builder)
    factory.create("custom", {"host": "db.internal", "port": 3307})

    assert captured[0].host == "db.internal"
    assert captured[0].port == 3307


def test_test_connection_returns_version(fake_mysql: FakeMySQLServer) -> None:
    fake_mysql.version = "10.11.6-MariaDB"
    check = _driver(fake_mysql, "mariadb").test_connection()

    assert check.driver == "mariadb"
    assert check.version == "10.11.6-MariaDB"
    assert "MariaDB" in check.message
    assert fake_mysql.connect_calls[0]["host"] == "localhost"
    assert fake_mysql.connect_calls[0]["connect_timeout"] == 10
    assert _all_closed(fake_mysql)


def test_connection_retries_operational_errors(fake_mysql: FakeMySQLServer) -> None:
    fake_mysql.connect_failures = 1
    check = _driver(fake_mysql, attempts=2).test_connection()

    assert check.version == "8.0.36"
    assert len(fake_mysql.connect_calls) == 2


def test_connection_failure_surfaces_connection_error(fake_mysql: FakeMySQLServer) -> None:
    fake_mysql.connect_failures = 5

    with pytest.raises(DatabaseConnectionError, match="localhost:3306"):
        _driver(fake_mysql).test_connection()


def test_create_database_uses_wide_charset(fake_mysql: FakeMySQLServer) -> None:
    creation = _driver(fake_mysql).create_database("demo_db")

    assert creation.database_name == "demo_db"
    assert creation.charset == "utf8mb4"
    assert "demo_db" in fake_mysql.databases
    assert fake_mysql.statements[-1] == (
        "CREATE DATABASE `demo_db` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
    )
    assert _all_closed(fake_mysql)


def test_create_database_rejects_existing(fake_mysql: FakeMySQLServer) -> None:
    fake_mysql.databases.add("demo_db")

    with pytest.raises(DatabaseExistsError):
        _driver(fake_mysql).create_database("demo_db")
    assert not any(statement.startswith("CREATE") for statement in fake_mysql.statements)
    assert _all_closed(fake_mysql)


@pytest.mark.parametrize("name", ["mysql", "information_schema", "SYS"])
def test_create_and_drop_refuse_protected_names(fake_mysql: FakeMySQLServer, name: str) -> None:
    driver = _driver(fake_mysql)

    with pytest.raises(ProtectedDatabaseError):
        driver.create_database(name)
    with pytest.raises(ProtectedDatabaseError):
        driver.drop_database(name)
    assert fake_mysql.connect_calls == []


def test_create_database_validates_name_before_connecting(fake_mysql: FakeMySQLServer) -> None:
    with pytest.raises(ValidationError):
        _driver(fake_mysql).create_database("demo`; DROP DATABASE x; --")
    assert fake_mysql.connect_calls == []


def test_drop_database_is_idempotent(fake_mysql: FakeMySQLServer) -> None:
    driver = _driver(fake_mysql)
    fake_mysql.databases.add("demo_db")

    first = driver.drop_database("demo_db")
    second = driver.drop_database("demo_db")

    assert first.existed is True
    assert second.existed is False
    assert "demo_db" not in fake_mysql.databases


def test_query_errors_close_connection(fake_mysql: FakeMySQLServer) -> None:
    fake_mysql.query_error = pymysql.err.OperationalError(1044, "Access denied")

    with pytest.raises(DatabaseDriverError, match="Access denied"):
        _driver(fake_mysql).database_exists("demo_db")
    assert fake_mysql.connections
    assert _all_closed(fake_mysql)


def test_set_config_revalidates_before_applying(fake_mysql: FakeMySQLServer) -> None:
    driver = _driver(fake_mysql)

    driver.set_config({"host": "db.internal", "port": 3310})
    assert driver.get_config().host == "db.internal"

    with pytest.raises(ValueError):
        driver.set_config({"port": 99999})
    assert driver.get_config().port == 3310

    driver.test_connection()
    assert fake_mysql.connect_calls[-1]["host"] == "db.internal"
