from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from wp_automation.models import (
    ArchiveInstallResult,
    ArchiveKind,
    BatchInstallResult,
    DirectoryCreated,
    PipelineResult,
    ProvisioningRequest,
    RollbackActionKind,
)


def test_request_is_immutable_and_builds_project_dir() -> None:
    request = ProvisioningRequest(project_name="demo", database_name="demo_db", destination_dir=Path("/tmp/proj"))

    assert request.project_dir == Path("/tmp/proj/demo")
    with pytest.raises(dataclasses.FrozenInstanceError):
        request.project_name = "other"  # type: ignore[misc]


def test_pipeline_result_is_frozen() -> None:
    result = PipelineResult(success=False, message="boom")

    with pytest.raises(dataclasses.FrozenInstanceError):
        result.success = True  # type: ignore[misc]
    assert result.rollback_errors == ()


def test_rollback_action_kinds() -> None:
    action = DirectoryCreated(path=Path("/tmp/proj/demo"))

    assert action.kind is RollbackActionKind.DIRECTORY_CREATED
    assert action.description == "Remove directory /tmp/proj/demo"


def test_batch_counts() -> None:
    batch = BatchInstallResult(
        kind=ArchiveKind.PLUGIN,
        success=True,
        message="",
        results=[
            ArchiveInstallResult(archive=Path("a.zip"), success=True, message="ok"),
            ArchiveInstallResult(archive=Path("b.zip"), success=False, message="bad"),
        ],
    )

    assert ArchiveKind.PLUGIN.content_dir == "plugins"
    assert batch.installed_count == 1
    assert batch.failed_count == 1
