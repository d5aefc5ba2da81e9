"""Service facade used by the CLI."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from .config import AutomationConfig, DatabaseConnectionConfig
from .drivers import ConnectionCheck, DatabaseDriver, DatabaseDriverFactory, create_driver_factory
from .models import PipelineResult, ProjectDeletionResult, ProjectInfo, ProvisioningRequest
from .pipeline import CancellationToken, ProgressSink, ProvisioningPipeline
from .projects import delete_project, inspect_project
from .validation import validate_project_name
from .vhost import suggest_server_name

logger = logging.getLogger(__name__)


class ProvisioningService:
    """Wires configuration, database drivers and the provisioning pipeline together."""

    def __init__(self, config: AutomationConfig, drivers: Optional[DatabaseDriverFactory] = None) -> None:
        self._config = config
        self._drivers = drivers or create_driver_factory(
            connect_timeout=config.database.connect_timeout,
            connect_attempts=config.database.connect_attempts,
        )
        self._pipeline = ProvisioningPipeline(config, self._drivers)

    @property
    def config(self) -> AutomationConfig:
        return self._config

    @property
    def driver(self) -> DatabaseDriver:
        return self._pipeline.driver

    def create_project(
        self,
        request: ProvisioningRequest,
        sink: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
    ) -> PipelineResult:
        context = self._pipeline.new_context(sink=sink, token=token)
        return self._pipeline.run(request, context)

    def test_connection(self) -> ConnectionCheck:
        return self.driver.test_connection()

    def project_exists(self, project_name: str, destination_dir: Path) -> bool:
        name = validate_project_name(project_name).unwrap()
        return (Path(destination_dir).expanduser() / name).exists()

    def get_database_config(self) -> DatabaseConnectionConfig:
        return self.driver.get_config()

    def update_database_config(self, changes: Mapping[str, Any]) -> DatabaseConnectionConfig:
        self.driver.set_config(changes)
        return self.driver.get_config()

    def available_drivers(self) -> list[tuple[str, str]]:
        return [(driver_type, self._drivers.display_name(driver_type)) for driver_type in self._drivers.available()]

    def suggest_server_name(self, project_name: str) -> str:
        return suggest_server_name(project_name, self._config.vhost.tld)

    def inspect_project(self, project_dir: Path) -> ProjectInfo:
        return inspect_project(project_dir)

    def delete_project(self, project_dir: Path, delete_database: bool = True) -> ProjectDeletionResult:
        return delete_project(
            project_dir,
            self._drivers,
            driver_type=self.driver.driver_type,
            delete_database=delete_database,
        )
