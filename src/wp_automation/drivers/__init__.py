from __future__ import annotations

from functools import partial

import pymysql

from .base import (
    ConnectionCheck,
    DatabaseConnectionError,
    DatabaseCreation,
    DatabaseDriver,
    DatabaseDriverError,
    DatabaseDriverFactory,
    DatabaseDrop,
    DatabaseExistsError,
    PROTECTED_DATABASES,
    ProtectedDatabaseError,
    UnsupportedDriverError,
)
from .mysql import MARIADB, MYSQL, Connect, MySQLCompatibleDriver

__all__ = [
    "ConnectionCheck",
    "DatabaseConnectionError",
    "DatabaseCreation",
    "DatabaseDriver",
    "DatabaseDriverError",
    "DatabaseDriverFactory",
    "DatabaseDrop",
    "DatabaseExistsError",
    "PROTECTED_DATABASES",
    "ProtectedDatabaseError",
    "UnsupportedDriverError",
    "create_driver_factory",
]


def create_driver_factory(
    connect: Connect = pymysql.connect,
    connect_timeout: int = 10,
    connect_attempts: int = 3,
) -> DatabaseDriverFactory:
    factory = DatabaseDriverFactory()
    for dialect in (MYSQL, MARIADB):
        factory.register(
            dialect.driver_type,
            partial(
                MySQLCompatibleDriver,
                dialect,
                connect=connect,
                connect_timeout=connect_timeout,
                connect_attempts=connect_attempts,
            ),
            display_name=dialect.display_name,
        )
    return factory
