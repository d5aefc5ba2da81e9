"""Provisioning pipeline: copy, configure, database, extras, permissions, vhost."""
from __future__ import annotations

import dataclasses
import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol

from .archive import ArchiveInstaller
from .config import AutomationConfig
from .drivers import DatabaseDriver, DatabaseDriverFactory
from .filesystem import WP_CONFIG_FILE, apply_permissions, copy_tree
from .models import (
    ERROR_STATUS,
    ROLLBACK_STATUS,
    ArchiveKind,
    PipelineResult,
    PipelineStep,
    ProvisioningRequest,
    StatusUpdate,
)
from .rollback import RollbackLedger
from .validation import (
    DEFAULT_TLD,
    ValidationError,
    validate_database_name,
    validate_path,
    validate_project_name,
    validate_server_name,
)
from .vhost import VhostArtifacts, build_vhost_artifacts
from .wpconfig import rewrite_database_name

logger = logging.getLogger(__name__)

STEP_LABELS = {
    PipelineStep.COPY: "Copying WordPress files",
    PipelineStep.CONFIGURE: "Configuring wp-config.php",
    PipelineStep.CREATE_DATABASE: "Creating database",
    PipelineStep.INSTALL_THEMES: "Installing themes",
    PipelineStep.INSTALL_PLUGINS: "Installing plugins",
    PipelineStep.SET_PERMISSIONS: "Setting permissions",
    PipelineStep.EMIT_VHOST: "Generating virtual host",
}


class PipelineError(RuntimeError):
    """Fatal failure of a pipeline step; triggers rollback."""

    def __init__(self, message: str, step: Optional[PipelineStep] = None) -> None:
        super().__init__(message)
        self.step = step


class ProjectExistsError(PipelineError):
    """Raised when the project directory is already present at the destination."""


class PipelineCancelledError(PipelineError):
    """Raised at a step boundary after the run was cancelled."""


class CancellationToken:
    """Cooperative cancellation flag polled between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressSink(Protocol):
    def status(self, update: StatusUpdate) -> None: ...

    def progress(self, percent: int) -> None: ...


class LoggingProgressSink:
    """Default sink that only writes progress to the log."""

    def status(self, update: StatusUpdate) -> None:
        if update.success is False:
            logger.warning("[%s] %s", update.step, update.message)
        else:
            logger.info("[%s] %s", update.step, update.message)

    def progress(self, percent: int) -> None:
        logger.debug("Progress: %d%%", percent)


@dataclass(slots=True)
class PipelineContext:
    """Per-run state: cancellation token, rollback ledger and progress sink."""

    ledger: RollbackLedger
    token: CancellationToken = field(default_factory=CancellationToken)
    sink: ProgressSink = field(default_factory=LoggingProgressSink)

    @classmethod
    def create(
        cls,
        drivers: DatabaseDriverFactory,
        safe_roots: Optional[Iterable[Path]] = None,
        sink: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
    ) -> "PipelineContext":
        return cls(
            ledger=RollbackLedger(drivers, safe_roots),
            token=token or CancellationToken(),
            sink=sink or LoggingProgressSink(),
        )

    def emit(self, step: str, message: str, success: Optional[bool] = None) -> None:
        try:
            self.sink.status(StatusUpdate(step=step, message=message, success=success))
        except Exception as exc:  # noqa: BLE001 - listeners must not affect the run
            logger.warning("Progress sink failed on status update: %s", exc)

    def report_progress(self, percent: int) -> None:
        try:
            self.sink.progress(percent)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Progress sink failed on percentage update: %s", exc)

    def check_cancelled(self, step: PipelineStep) -> None:
        if self.token.cancelled:
            raise PipelineCancelledError("Provisioning cancelled by user", step)


@dataclass(slots=True, frozen=True)
class StepOutcome:
    success: bool
    message: str


def plan_steps(request: ProvisioningRequest) -> list[PipelineStep]:
    steps = [PipelineStep.COPY, PipelineStep.CONFIGURE, PipelineStep.CREATE_DATABASE]
    if request.themes_dir:
        steps.append(PipelineStep.INSTALL_THEMES)
    if request.plugins_dir:
        steps.append(PipelineStep.INSTALL_PLUGINS)
    steps.extend([PipelineStep.SET_PERMISSIONS, PipelineStep.EMIT_VHOST])
    return steps


def progress_percent(current: int, total: int) -> int:
    if total <= 0:
        return 100
    return int(math.floor(current / total * 100 + 0.5))


def _checked_path(value: Optional[Path], label: str) -> Optional[Path]:
    if value is None:
        return None
    result = validate_path(str(value))
    if not result.valid:
        raise ValidationError(f"{label}: {result.error}")
    return Path(result.sanitized or str(value))


def validate_request(request: ProvisioningRequest, tld: str = DEFAULT_TLD) -> ProvisioningRequest:
    """Return a sanitized copy of ``request`` or raise ValidationError.

    An explicit server name must end in ``tld``, the label the vhost config suggests names with.
    """
    project_name = validate_project_name(request.project_name).unwrap()
    database_name = validate_database_name(request.database_name).unwrap()
    destination_dir = _checked_path(request.destination_dir, "Destination directory")
    if destination_dir is None:
        raise ValidationError("Destination directory is required")
    server_name = request.server_name
    if server_name:
        server_name = validate_server_name(server_name, tld).unwrap()
    return dataclasses.replace(
        request,
        project_name=project_name,
        database_name=database_name,
        destination_dir=destination_dir,
        themes_dir=_checked_path(request.themes_dir, "Themes directory"),
        plugins_dir=_checked_path(request.plugins_dir, "Plugins directory"),
        server_name=server_name or None,
    )


class ProvisioningPipeline:
    """Runs the provisioning steps for one request and rolls back on fatal failure."""

    def __init__(
        self,
        config: AutomationConfig,
        drivers: DatabaseDriverFactory,
        driver: Optional[DatabaseDriver] = None,
        installer: Optional[ArchiveInstaller] = None,
    ) -> None:
        self._config = config
        self._drivers = drivers
        self._driver = driver or drivers.create(config.database.driver, config.database.connection)
        self._installer = installer or ArchiveInstaller(config.paths.temp_dir)

    @property
    def driver(self) -> DatabaseDriver:
        return self._driver

    def new_context(
        self,
        sink: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
    ) -> PipelineContext:
        return PipelineContext.create(self._drivers, self._config.rollback.safe_roots, sink=sink, token=token)

    def run(self, request: ProvisioningRequest, context: Optional[PipelineContext] = None) -> PipelineResult:
        context = context or self.new_context()
        try:
            request = validate_request(request, self._config.vhost.tld)
            driver = self._resolve_driver(request)
        except (ValidationError, KeyError, ValueError) as exc:
            message = str(exc)
            logger.error("Provisioning request rejected: %s", message)
            context.emit(ERROR_STATUS, message, False)
            return PipelineResult(success=False, message=message)

        template_dir = self._config.paths.wordpress_base
        if template_dir is None:
            message = "WordPress template directory is not configured (paths.wordpress_base)"
            context.emit(ERROR_STATUS, message, False)
            return PipelineResult(success=False, message=message)

        steps = plan_steps(request)
        project_dir = request.project_dir
        logger.info(
            "Provisioning project '%s' in %s (%d steps)", request.project_name, project_dir, len(steps)
        )

        artifacts: Optional[VhostArtifacts] = None
        try:
            if project_dir.exists():
                raise ProjectExistsError(f"Project directory already exists: {project_dir}", PipelineStep.COPY)

            for index, step in enumerate(steps, start=1):
                context.check_cancelled(step)
                context.emit(step.value, STEP_LABELS[step])
                if step is PipelineStep.EMIT_VHOST:
                    artifacts = self._emit_vhost(request, context)
                    context.emit(step.value, f"Virtual host ready for {artifacts.server_name}", True)
                    context.report_progress(100)
                    continue

                outcome = self._run_step(step, request, template_dir, driver, context)
                context.emit(step.value, outcome.message, outcome.success)
                context.report_progress(progress_percent(index, len(steps)))
        except PipelineError as exc:
            return self._fail(exc, context, project_dir)

        context.ledger.clear()
        message = f"Project '{request.project_name}' created at {project_dir}"
        logger.info(message)
        return PipelineResult(
            success=True,
            message=message,
            vhost_text=artifacts.vhost_text if artifacts else None,
            hosts_entry_text=artifacts.hosts_entry_text if artifacts else None,
            server_name=artifacts.server_name if artifacts else None,
            project_dir=project_dir,
        )

    def _resolve_driver(self, request: ProvisioningRequest) -> DatabaseDriver:
        if request.database_override is None:
            return self._driver
        logger.info("Using per-request database connection %s", request.database_override.masked())
        return self._drivers.create(self._driver.driver_type, request.database_override)

    def _run_step(
        self,
        step: PipelineStep,
        request: ProvisioningRequest,
        template_dir: Path,
        driver: DatabaseDriver,
        context: PipelineContext,
    ) -> StepOutcome:
        if step is PipelineStep.INSTALL_THEMES:
            return self._install_archives(request.themes_dir, request.project_dir, ArchiveKind.THEME)
        if step is PipelineStep.INSTALL_PLUGINS:
            return self._install_archives(request.plugins_dir, request.project_dir, ArchiveKind.PLUGIN)
        if step is PipelineStep.SET_PERMISSIONS:
            return self._set_permissions(request.project_dir)

        try:
            if step is PipelineStep.COPY:
                return self._copy(template_dir, request.project_dir, context)
            if step is PipelineStep.CONFIGURE:
                return self._configure(request)
            if step is PipelineStep.CREATE_DATABASE:
                return self._create_database(request.database_name, driver, context)
        except Exception as exc:  # noqa: BLE001 - every fatal step failure goes through rollback
            logger.exception("Step '%s' failed", step.value)
            context.emit(step.value, f"{STEP_LABELS[step]} failed: {exc}", False)
            raise PipelineError(f"{STEP_LABELS[step]} failed: {exc}", step) from exc
        raise PipelineError(f"Unknown pipeline step '{step}'", step)

    def _copy(self, template_dir: Path, project_dir: Path, context: PipelineContext) -> StepOutcome:
        copy_tree(template_dir, project_dir)
        context.ledger.register_directory(project_dir)
        return StepOutcome(True, f"WordPress files copied to {project_dir}")

    def _configure(self, request: ProvisioningRequest) -> StepOutcome:
        rewrite_database_name(request.project_dir / WP_CONFIG_FILE, request.database_name)
        return StepOutcome(True, f"wp-config.php points at database '{request.database_name}'")

    def _create_database(self, database_name: str, driver: DatabaseDriver, context: PipelineContext) -> StepOutcome:
        # Rollback must drop with the credentials in effect at creation time.
        snapshot = driver.get_config()
        creation = driver.create_database(database_name)
        context.ledger.register_database(creation.database_name, driver.driver_type, snapshot)
        return StepOutcome(True, f"Database '{creation.database_name}' created ({creation.charset})")

    def _install_archives(self, archives_dir: Optional[Path], project_dir: Path, kind: ArchiveKind) -> StepOutcome:
        if archives_dir is None:
            return StepOutcome(True, f"No {kind.content_dir} requested")
        try:
            batch = self._installer.install_directory(archives_dir, project_dir, kind)
        except Exception as exc:  # noqa: BLE001 - archive installs never abort the run
            logger.exception("Installing %s from %s failed", kind.content_dir, archives_dir)
            return StepOutcome(False, f"Installing {kind.content_dir} failed: {exc}")
        for result in batch.results:
            if not result.success:
                logger.warning(result.message)
        return StepOutcome(batch.success, batch.message)

    def _emit_vhost(self, request: ProvisioningRequest, context: PipelineContext) -> VhostArtifacts:
        step = PipelineStep.EMIT_VHOST
        try:
            return build_vhost_artifacts(
                request.project_name, request.project_dir, request.server_name, self._config.vhost
            )
        except Exception as exc:  # noqa: BLE001 - rendering failures roll back like any fatal step
            logger.exception("Step '%s' failed", step.value)
            context.emit(step.value, f"{STEP_LABELS[step]} failed: {exc}", False)
            raise PipelineError(f"{STEP_LABELS[step]} failed: {exc}", step) from exc

    def _set_permissions(self, project_dir: Path) -> StepOutcome:
        try:
            report = apply_permissions(project_dir, self._config.permissions)
        except Exception as exc:  # noqa: BLE001 - permissions are best effort
            logger.warning("Setting permissions on %s failed: %s", project_dir, exc)
            return StepOutcome(False, f"Permissions not applied: {exc}")
        return StepOutcome(True, f"Permissions set on {report.directories} directories and {report.files} files")

    def _fail(self, exc: PipelineError, context: PipelineContext, project_dir: Path) -> PipelineResult:
        message = str(exc)
        if isinstance(exc, PipelineCancelledError):
            logger.warning("Provisioning cancelled before step '%s'", exc.step.value if exc.step else "?")
        else:
            logger.error("Provisioning failed: %s", message)
        context.emit(ERROR_STATUS, message, False)

        context.emit(ROLLBACK_STATUS, f"Rolling back {len(context.ledger)} action(s)")
        outcome = context.ledger.execute()
        context.ledger.clear()
        if outcome.success:
            context.emit(ROLLBACK_STATUS, "Rollback completed", True)
        else:
            context.emit(ROLLBACK_STATUS, f"Rollback incomplete: {'; '.join(outcome.errors)}", False)
            message = f"{message} (rollback incomplete: {len(outcome.errors)} error(s))"

        return PipelineResult(
            success=False,
            message=message,
            project_dir=project_dir,
            rollback_errors=outcome.errors,
        )
