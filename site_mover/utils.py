"""Utility functions shared by the pipeline services."""

import hashlib
import re
import shlex
from datetime import UTC, datetime
from pathlib import Path

from .constants import OUTPUT_TRUNCATE_LIMIT, POSTGRES_CONNECTIONS


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()


def truncate(value: str, limit: int = OUTPUT_TRUNCATE_LIMIT) -> str:
    """Trim command output and cap it at ``limit`` characters.

    Example:
        >>> truncate("  abcdef  ", limit=3)
        'abc...'
    """
    value = value.strip()
    if len(value) <= limit:
        return value
    return value[:limit] + "..."


def is_postgres(connection: str) -> bool:
    return connection.lower() in POSTGRES_CONNECTIONS


def resolve_under_root(root: str, path: str) -> str:
    """Absolute paths are kept as-is; relative ones are joined under ``root``."""
    if path.startswith("/"):
        return path
    return root.rstrip("/") + "/" + path.lstrip("/")


def redis_ping_command(host: str, port: str, password: str = "") -> str:
    """Build a ``redis-cli ... ping`` command with every argument quoted."""
    command = f"redis-cli -h {shlex.quote(host)} -p {shlex.quote(port)}"
    if password:
        command += f" -a {shlex.quote(password)}"
    return command + " ping"


def sha256_file(path: Path | str, chunk_size: int = 1024 * 1024) -> str:
    """Hex sha256 digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


_SECRET_ASSIGNMENT = re.compile(r"\b([A-Z_]*(?:PWD|PASSWORD)=)('[^']*'|\S+)")
_SECRET_FLAG = re.compile(r"(\s-a\s+)('[^']*'|\S+)")


def redact_command(command: str) -> str:
    """Mask inline credentials (``MYSQL_PWD=...``, ``PGPASSWORD=...``, ``-a ...``) for logging."""
    command = _SECRET_ASSIGNMENT.sub(r"\1***", command)
    return _SECRET_FLAG.sub(r"\1***", command)
