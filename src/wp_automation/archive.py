"""Theme and plugin archive installation.

Each archive is extracted into its own staging directory, stripped of OS
metadata, unwrapped when it holds a single top-level folder and merged into
``wp-content/<themes|plugins>/<name>`` without overwriting existing files.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

from .filesystem import merge_tree
from .models import ArchiveInstallResult, ArchiveKind, BatchInstallResult

logger = logging.getLogger(__name__)

SYSTEM_ENTRIES = frozenset({"__MACOSX", ".DS_Store", "Thumbs.db", "desktop.ini"})
ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar", ".zip", ".rar")


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be extracted."""


def archive_format(path: Path) -> Optional[str]:
    name = path.name.lower()
    for suffix in ARCHIVE_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    return None


def archive_stem(path: Path) -> str:
    suffix = archive_format(path)
    return path.name[: -len(suffix)] if suffix else path.stem


def extract_archive(archive: Path, destination: Path) -> None:
    """Extract ``archive`` into ``destination`` (created if needed)."""
    fmt = archive_format(archive)
    destination.mkdir(parents=True, exist_ok=True)
    try:
        if fmt == ".zip":
            with zipfile.ZipFile(archive) as bundle:
                bundle.extractall(destination)
        elif fmt in (".tar", ".tar.gz", ".tgz"):
            with tarfile.open(archive) as bundle:
                bundle.extractall(destination, filter="data")
        elif fmt == ".rar":
            _extract_rar(archive, destination)
        else:
            raise ArchiveError(f"Unsupported archive format: {archive.name}")
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, RuntimeError, NotImplementedError) as exc:
        # zipfile raises RuntimeError for encrypted entries and NotImplementedError for unknown compression.
        raise ArchiveError(f"Could not extract {archive.name}: {exc}") from exc
    logger.debug("Extracted %s into %s", archive, destination)


def _extract_rar(archive: Path, destination: Path) -> None:
    if shutil.which("unrar") is None:
        raise ArchiveError("unrar is not installed; install it to extract .rar archives")
    try:
        subprocess.run(
            ["unrar", "x", "-idq", str(archive), f"{destination}/"],
            check=True,
            text=True,
            capture_output=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
        raise ArchiveError(f"Could not extract {archive.name}: {detail}") from exc


def remove_system_entries(directory: Path) -> None:
    for entry in directory.iterdir():
        if entry.name in SYSTEM_ENTRIES or entry.name.startswith("._"):
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            logger.debug("Discarded system entry %s", entry)


def find_content_root(extract_dir: Path) -> Path:
    """Return the directory that actually holds the theme/plugin files."""
    remove_system_entries(extract_dir)
    entries = list(extract_dir.iterdir())
    dirs = [entry for entry in entries if entry.is_dir()]
    if len(dirs) == 1 and len(entries) == 1:
        remove_system_entries(dirs[0])
        return dirs[0]
    return extract_dir


class ArchiveInstaller:
    def __init__(self, staging_root: Optional[Path] = None) -> None:
        self._staging_root = Path(staging_root) if staging_root else None

    def install(self, archive: Path, project_dir: Path, kind: ArchiveKind) -> ArchiveInstallResult:
        archive = Path(archive)
        if not archive.is_file():
            return ArchiveInstallResult(archive=archive, success=False, message=f"Archive not found: {archive}")

        if self._staging_root is not None:
            self._staging_root.mkdir(parents=True, exist_ok=True)
        staging_dir = Path(
            tempfile.mkdtemp(
                prefix=f"{kind.value}-extract-",
                dir=str(self._staging_root) if self._staging_root else None,
            )
        )
        try:
            # Nesting under the archive stem means a non-wrapped archive installs as <stem>.
            extract_root = staging_dir / archive_stem(archive)
            logger.info("Extracting %s %s into %s", kind.value, archive, staging_dir)
            extract_archive(archive, extract_root)

            content_root = find_content_root(extract_root)
            name = content_root.name
            destination = Path(project_dir) / "wp-content" / kind.content_dir / name
            copied = merge_tree(content_root, destination)
            logger.info("Installed %s '%s' into %s (%d files)", kind.value, name, destination, copied)
            return ArchiveInstallResult(
                archive=archive,
                success=True,
                message=f"{kind.value.capitalize()} '{name}' installed",
                name=name,
                destination=destination,
            )
        except (ArchiveError, OSError) as exc:
            logger.error("Failed to install %s from %s: %s", kind.value, archive, exc)
            return ArchiveInstallResult(
                archive=archive,
                success=False,
                message=f"Failed to install {kind.value} from {archive.name}: {exc}",
            )
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)
            if staging_dir.exists():
                logger.warning("Staging directory %s could not be removed", staging_dir)

    def install_directory(self, archives_dir: Path, project_dir: Path, kind: ArchiveKind) -> BatchInstallResult:
        """Install every recognised archive in ``archives_dir``; failures do not stop the batch."""
        archives_dir = Path(archives_dir)
        if not archives_dir.is_dir():
            return BatchInstallResult(
                kind=kind,
                success=False,
                message=f"{kind.content_dir.capitalize()} directory not found: {archives_dir}",
            )

        archives = sorted(
            entry for entry in archives_dir.iterdir() if entry.is_file() and archive_format(entry) is not None
        )
        if not archives:
            return BatchInstallResult(
                kind=kind,
                success=False,
                message=f"No archives found in {archives_dir}",
            )

        logger.info("Installing %d %s archive(s) from %s", len(archives), kind.value, archives_dir)
        batch = BatchInstallResult(kind=kind, success=False, message="")
        for archive in archives:
            try:
                result = self.install(archive, project_dir, kind)
            except Exception as exc:  # noqa: BLE001 - one archive never stops the batch
                logger.exception("Unexpected error installing %s from %s", kind.value, archive)
                result = ArchiveInstallResult(
                    archive=archive,
                    success=False,
                    message=f"Failed to install {kind.value} from {archive.name}: {exc}",
                )
            batch.results.append(result)

        batch.success = batch.installed_count > 0
        batch.message = f"{batch.installed_count} {kind.value}(s) installed, {batch.failed_count} failed"
        return batch
