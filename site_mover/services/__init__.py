"""
Site Mover Services

Pipeline stages, the orchestrator that sequences them and the caller-facing actions.
"""

from .actions import SiteMoverActions  # noqa: F401
from .backup import BackupService  # noqa: F401
from .discovery import DiscoveryService  # noqa: F401
from .orchestrator import MigrationOrchestrator  # noqa: F401
from .restore import RestoreService  # noqa: F401
from .validation import ValidationService  # noqa: F401

__all__ = [
    "DiscoveryService",
    "BackupService",
    "RestoreService",
    "ValidationService",
    "MigrationOrchestrator",
    "SiteMoverActions",
]
