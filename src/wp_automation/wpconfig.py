"""Read and rewrite the database settings in wp-config.php."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .models import WpConfigInfo

logger = logging.getLogger(__name__)

TABLE_PREFIX_PATTERN = re.compile(r"\$table_prefix\s*=\s*['\"]([^'\"]+)['\"]")


class WpConfigError(ValueError):
    """Raised when wp-config.php lacks an expected define()."""


def _define_pattern(constant: str) -> re.Pattern[str]:
    return re.compile(
        r"(define\s*\(\s*['\"]" + re.escape(constant) + r"['\"]\s*,\s*['\"])([^'\"]*)(['\"]\s*\)\s*;)"
    )


def _read(config_path: Path) -> str:
    if not config_path.is_file():
        raise FileNotFoundError(f"wp-config.php not found: {config_path}")
    return config_path.read_text(encoding="utf-8")


def _substitute(content: str, constant: str, value: str) -> str:
    pattern = _define_pattern(constant)
    if not pattern.search(content):
        raise WpConfigError(f"{constant} definition not found in wp-config.php")
    return pattern.sub(lambda match: f"{match.group(1)}{value}{match.group(3)}", content)


def rewrite_database_name(config_path: Path, database_name: str) -> None:
    """Replace the DB_NAME value in ``config_path``."""
    rewrite_settings(config_path, db_name=database_name)


def rewrite_settings(
    config_path: Path,
    db_name: Optional[str] = None,
    db_user: Optional[str] = None,
    db_password: Optional[str] = None,
    db_host: Optional[str] = None,
) -> None:
    config_path = Path(config_path)
    content = _read(config_path)
    updates = {
        "DB_NAME": db_name,
        "DB_USER": db_user,
        "DB_PASSWORD": db_password,
        "DB_HOST": db_host,
    }
    for constant, value in updates.items():
        if value is None:
            continue
        content = _substitute(content, constant, value)
        if constant != "DB_PASSWORD":
            logger.debug("Set %s to '%s' in %s", constant, value, config_path)
    config_path.write_text(content, encoding="utf-8")
    logger.info("Updated %s", config_path)


def _extract_define(content: str, constant: str) -> Optional[str]:
    match = _define_pattern(constant).search(content)
    return match.group(2) if match else None


def read_wp_config(project_dir: Path) -> Optional[WpConfigInfo]:
    """Extract database settings from a project's wp-config.php.

    Returns None when the file is missing or defines no DB_NAME.
    """
    config_path = Path(project_dir) / "wp-config.php"
    if not config_path.is_file():
        logger.warning("wp-config.php not found under %s", project_dir)
        return None
    content = config_path.read_text(encoding="utf-8")
    db_name = _extract_define(content, "DB_NAME")
    if not db_name:
        logger.warning("DB_NAME not defined in %s", config_path)
        return None
    prefix = TABLE_PREFIX_PATTERN.search(content)
    return WpConfigInfo(
        db_name=db_name,
        db_user=_extract_define(content, "DB_USER") or "root",
        db_password=_extract_define(content, "DB_PASSWORD") or "",
        db_host=_extract_define(content, "DB_HOST") or "localhost",
        table_prefix=prefix.group(1) if prefix else None,
    )
