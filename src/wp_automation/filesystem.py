"""Filesystem helpers: template copy, permission policy and guarded removal."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Sequence

from .config import PermissionsConfig
from .models import PermissionsReport

logger = logging.getLogger(__name__)

WP_CONFIG_FILE = "wp-config.php"
PROTECTED_PATHS = frozenset({"/", "/home", "/root", "/etc", "/var", "/usr", "/opt"})


class UnsafePathError(PermissionError):
    """Raised when a removal targets a path outside the allowed roots."""


def copy_tree(source: Path, destination: Path) -> Path:
    """Copy the template tree to a destination that must not exist yet."""
    source = Path(source)
    destination = Path(destination)
    if not source.is_dir():
        raise FileNotFoundError(f"Source directory does not exist: {source}")
    if destination.exists():
        raise FileExistsError(f"Destination already exists: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Copying %s to %s", source, destination)
    shutil.copytree(source, destination, symlinks=True)
    return destination


def merge_tree(source: Path, destination: Path) -> int:
    """Copy ``source`` into ``destination`` without overwriting existing files.

    Returns the number of files copied.
    """
    copied = 0
    destination.mkdir(parents=True, exist_ok=True)
    for root, dirs, files in os.walk(source):
        relative = Path(root).relative_to(source)
        target_root = destination / relative
        for name in dirs:
            (target_root / name).mkdir(exist_ok=True)
        for name in files:
            target = target_root / name
            if target.exists():
                logger.debug("Keeping existing file %s", target)
                continue
            shutil.copy2(Path(root) / name, target)
            copied += 1
    return copied


def apply_permissions(root_dir: Path, policy: PermissionsConfig | None = None) -> PermissionsReport:
    """Apply the WordPress permission policy to every entry under ``root_dir``."""
    policy = policy or PermissionsConfig()
    root_dir = Path(root_dir)
    if not root_dir.is_dir():
        raise FileNotFoundError(f"Path does not exist: {root_dir}")

    directories = 0
    files = 0
    for root, dirnames, filenames in os.walk(root_dir):
        os.chmod(root, policy.directory_mode)
        directories += 1
        for name in filenames:
            path = Path(root) / name
            if path.is_symlink():
                continue
            os.chmod(path, policy.file_mode)
            files += 1

    config_file = root_dir / WP_CONFIG_FILE
    if config_file.is_file():
        os.chmod(config_file, policy.config_mode)
        logger.debug("Restricted %s to %o", config_file, policy.config_mode)

    logger.info("Permissions applied under %s: %d directories, %d files", root_dir, directories, files)
    return PermissionsReport(directories=directories, files=files)


def default_safe_roots(extra: Iterable[Path] = ()) -> list[Path]:
    roots = [Path(tempfile.gettempdir()), Path.home(), Path("/tmp"), Path("/home"), Path("/opt")]
    roots.extend(Path(item) for item in extra)
    unique: list[Path] = []
    for root in roots:
        resolved = root.expanduser().resolve()
        if resolved not in unique:
            unique.append(resolved)
    return unique


def is_within(path: Path, roots: Sequence[Path]) -> bool:
    resolved = Path(path).expanduser().resolve()
    for root in roots:
        root_resolved = Path(root).expanduser().resolve()
        if resolved != root_resolved and resolved.is_relative_to(root_resolved):
            return True
    return False


def remove_tree(path: Path, safe_roots: Sequence[Path]) -> bool:
    """Recursively delete ``path`` if it sits strictly below one of ``safe_roots``.

    Returns False when the path was already absent.
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return False
    if str(path.expanduser().resolve()) in PROTECTED_PATHS or not is_within(path, safe_roots):
        raise UnsafePathError(f"Refusing to delete {path}: outside the allowed roots")
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    logger.info("Removed %s", path)
    return True
