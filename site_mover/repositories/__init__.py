"""Migration record persistence."""

from .in_memory import InMemoryMigrationRepository  # noqa: F401
from .interface import MigrationRepository  # noqa: F401
from .json_file import JsonFileMigrationRepository  # noqa: F401

__all__ = [
    "InMemoryMigrationRepository",
    "JsonFileMigrationRepository",
    "MigrationRepository",
]
