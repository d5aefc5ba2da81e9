"""Compensating-action ledger for a single provisioning run."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import DatabaseConnectionConfig
from .drivers import DatabaseDriverFactory
from .drivers.base import ensure_not_protected
from .filesystem import default_safe_roots, remove_tree
from .models import DatabaseCreated, DirectoryCreated, FileCreated, RollbackAction, RollbackOutcome

logger = logging.getLogger(__name__)


class RollbackLedger:
    """Records undo actions as forward steps complete and replays them in reverse."""

    def __init__(self, drivers: DatabaseDriverFactory, safe_roots: Optional[Iterable[Path]] = None) -> None:
        self._drivers = drivers
        self._safe_roots = default_safe_roots(safe_roots or ())
        self._actions: list[RollbackAction] = []
        self._rolling_back = False

    @property
    def actions(self) -> tuple[RollbackAction, ...]:
        return tuple(self._actions)

    @property
    def rolling_back(self) -> bool:
        return self._rolling_back

    @property
    def safe_roots(self) -> list[Path]:
        return list(self._safe_roots)

    def __len__(self) -> int:
        return len(self._actions)

    def _register(self, action: RollbackAction) -> None:
        if self._rolling_back:
            logger.debug("Ignoring registration during rollback: %s", action.description)
            return
        self._actions.append(action)
        logger.debug("Registered rollback action: %s", action.description)

    def register_directory(self, path: Path) -> None:
        self._register(DirectoryCreated(path=Path(path)))

    def register_database(self, database_name: str, driver_type: str, connection: DatabaseConnectionConfig) -> None:
        self._register(DatabaseCreated(database_name=database_name, driver_type=driver_type, connection=connection))

    def register_file(self, path: Path) -> None:
        self._register(FileCreated(path=Path(path)))

    def clear(self) -> None:
        self._actions.clear()

    def execute(self) -> RollbackOutcome:
        """Undo every recorded action, newest first.

        Failures are collected rather than raised so that one broken
        compensation never blocks the remaining ones.
        """
        if not self._actions:
            return RollbackOutcome(success=True)

        self._rolling_back = True
        errors: list[str] = []
        attempted = 0
        try:
            for action in reversed(self._actions):
                attempted += 1
                logger.info("Rolling back: %s", action.description)
                try:
                    self._undo(action)
                except Exception as exc:  # noqa: BLE001 - every compensation must be attempted
                    logger.error("Rollback of '%s' failed: %s", action.description, exc)
                    errors.append(f"{action.description}: {exc}")
        finally:
            self._rolling_back = False
            self._actions.clear()

        if errors:
            logger.warning("Rollback finished with %d error(s)", len(errors))
        else:
            logger.info("Rollback finished; %d action(s) undone", attempted)
        return RollbackOutcome(success=not errors, errors=tuple(errors), actions_attempted=attempted)

    def _undo(self, action: RollbackAction) -> None:
        if isinstance(action, DatabaseCreated):
            self._drop_database(action)
        elif isinstance(action, DirectoryCreated):
            if not remove_tree(action.path, self._safe_roots):
                logger.info("Directory %s already removed", action.path)
        elif isinstance(action, FileCreated):
            if action.path.is_file() or action.path.is_symlink():
                action.path.unlink()
            else:
                logger.info("File %s already removed", action.path)
        else:
            raise TypeError(f"Unknown rollback action: {action!r}")

    def _drop_database(self, action: DatabaseCreated) -> None:
        ensure_not_protected(action.database_name)
        driver = self._drivers.create(action.driver_type, action.connection)
        result = driver.drop_database(action.database_name)
        if not result.existed:
            logger.info("Database %s already absent", action.database_name)
