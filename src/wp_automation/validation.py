"""Input validation for names, paths and connection parameters.

Every value that ends up in a filesystem path or an SQL statement goes through
one of these functions first.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

SHELL_DANGEROUS_CHARS = re.compile(r"[;&|`$(){}\[\]<>!#*?\\'\"]")
PROJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,63}$")
DATABASE_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]{0,63}$")
PATH_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./\\: ]+$")
SERVER_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*(\.[a-z0-9][a-z0-9-]*)+$")
HOST_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9.-]{0,253}[a-zA-Z0-9]$|^[a-zA-Z0-9]$|^localhost$")
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

RESERVED_PROJECT_NAMES = frozenset({"con", "prn", "aux", "nul", "com1", "com2", "com3", "lpt1", "lpt2", "lpt3"})
RESERVED_DATABASE_NAMES = frozenset({"mysql", "information_schema", "performance_schema", "sys", "test"})

MAX_NAME_LENGTH = 64
MAX_PATH_LENGTH = 4096
MAX_SERVER_NAME_LENGTH = 253
MAX_USER_LENGTH = 32
DEFAULT_TLD = "local"


class ValidationError(ValueError):
    """Raised when user input fails validation."""


@dataclass(slots=True, frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    sanitized: Optional[str] = None

    def unwrap(self) -> str:
        """Return the sanitized value or raise ValidationError."""
        if not self.valid:
            raise ValidationError(self.error or "invalid value")
        return self.sanitized or ""


def _fail(message: str) -> ValidationResult:
    return ValidationResult(valid=False, error=message)


def validate_project_name(name: Any) -> ValidationResult:
    if not name or not isinstance(name, str):
        return _fail("Project name is required")
    trimmed = name.strip()
    if not trimmed:
        return _fail("Project name cannot be empty")
    if len(trimmed) > MAX_NAME_LENGTH:
        return _fail(f"Project name cannot exceed {MAX_NAME_LENGTH} characters")
    if not PROJECT_NAME_PATTERN.match(trimmed):
        return _fail(
            "Project name must start with a letter and contain only letters, digits, hyphens and underscores"
        )
    if trimmed.lower() in RESERVED_PROJECT_NAMES:
        return _fail(f"Project name '{trimmed}' is reserved by the operating system")
    return ValidationResult(valid=True, sanitized=trimmed)


def validate_database_name(name: Any) -> ValidationResult:
    if not name or not isinstance(name, str):
        return _fail("Database name is required")
    trimmed = name.strip()
    if not trimmed:
        return _fail("Database name cannot be empty")
    if len(trimmed) > MAX_NAME_LENGTH:
        return _fail(f"Database name cannot exceed {MAX_NAME_LENGTH} characters")
    if not DATABASE_NAME_PATTERN.match(trimmed):
        return _fail(
            "Database name must start with a letter or underscore and contain only letters, digits and underscores"
        )
    if trimmed.lower() in RESERVED_DATABASE_NAMES:
        return _fail(f"Database name '{trimmed}' is reserved by the database server")
    return ValidationResult(valid=True, sanitized=trimmed)


def validate_path(path: Any) -> ValidationResult:
    if not path or not isinstance(path, str):
        return _fail("Path is required")
    trimmed = path.strip()
    if not trimmed:
        return _fail("Path cannot be empty")
    if len(trimmed) > MAX_PATH_LENGTH:
        return _fail("Path is too long")
    if ".." in trimmed:
        return _fail("Relative paths containing '..' are not allowed")
    if SHELL_DANGEROUS_CHARS.search(trimmed):
        return _fail("Path contains characters that are not allowed")
    if not PATH_PATTERN.match(trimmed):
        return _fail("Path format is invalid")
    return ValidationResult(valid=True, sanitized=trimmed)


def validate_server_name(name: Any, tld: Optional[str] = DEFAULT_TLD) -> ValidationResult:
    """Check a virtual-host name; with ``tld`` set it must also end in that label."""
    if not name or not isinstance(name, str):
        return _fail("Server name is required")
    trimmed = name.strip().lower()
    if not trimmed:
        return _fail("Server name cannot be empty")
    if len(trimmed) > MAX_SERVER_NAME_LENGTH:
        return _fail("Server name is too long")
    if not SERVER_NAME_PATTERN.match(trimmed):
        return _fail("Server name must be a hostname such as 'name.local' or 'sub.name.local'")
    if tld and not trimmed.endswith(f".{tld.lower()}"):
        return _fail(f"Server name must end in '.{tld.lower()}'")
    return ValidationResult(valid=True, sanitized=trimmed)


def validate_connection_params(params: Mapping[str, Any]) -> ValidationResult:
    """Validate any subset of host, port, user and password."""
    host = params.get("host")
    if host is not None and (not isinstance(host, str) or not HOST_PATTERN.match(host)):
        return _fail("Invalid database host")

    port = params.get("port")
    if port is not None:
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            return _fail("Port must be an integer between 1 and 65535")

    user = params.get("user")
    if user is not None:
        if not isinstance(user, str) or len(user) > MAX_USER_LENGTH:
            return _fail("Database user is invalid")
        if SHELL_DANGEROUS_CHARS.search(user):
            return _fail("Database user contains characters that are not allowed")

    password = params.get("password")
    if password is not None and (not isinstance(password, str) or CONTROL_CHARS.search(password)):
        return _fail("Database password contains invalid characters")

    return ValidationResult(valid=True)


_VALIDATORS: Dict[str, Callable[[Any], ValidationResult]] = {
    "project_name": validate_project_name,
    "database_name": validate_database_name,
    "path": validate_path,
    "server_name": validate_server_name,
    "connection": validate_connection_params,
}


def validate(kind: str, value: Any) -> ValidationResult:
    """Dispatch to the validator registered for ``kind``."""
    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise KeyError(f"Unknown validation kind '{kind}'")
    return validator(value)


def has_dangerous_chars(value: str) -> bool:
    return bool(SHELL_DANGEROUS_CHARS.search(value))
