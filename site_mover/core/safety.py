"""Safety guards for destructive remote operations."""

import posixpath

import structlog

from .exceptions import SafetyError

logger = structlog.get_logger()


class RemoteCleanupSafety:
    """Restricts remote file deletion to the configured temp directory."""

    # Paths that must never be deleted even if the temp dir is misconfigured
    FORBIDDEN_PATHS = [
        "/",
        "/bin",
        "/boot",
        "/dev",
        "/etc",
        "/home",
        "/lib",
        "/proc",
        "/root",
        "/sbin",
        "/sys",
        "/usr",
        "/var",
    ]

    def __init__(self, remote_tmp_dir: str):
        self.remote_tmp_dir = posixpath.normpath(remote_tmp_dir)
        self.logger = logger.bind(component="remote_cleanup_safety")

    def validate_deletion_path(self, file_path: str) -> tuple[bool, str]:
        """Validate that a remote path is safe to delete.

        Args:
            file_path: Absolute remote path

        Returns:
            Tuple of (is_safe: bool, reason: str)
        """
        if not file_path.startswith("/"):
            return False, f"Path '{file_path}' is not absolute"

        if ".." in file_path.split("/"):
            return False, f"Path '{file_path}' contains parent directory traversal"

        normalized = posixpath.normpath(file_path)
        if normalized in self.FORBIDDEN_PATHS or normalized == self.remote_tmp_dir:
            return False, f"Path '{normalized}' is a protected directory"

        if not normalized.startswith(self.remote_tmp_dir.rstrip("/") + "/"):
            return False, f"Path '{normalized}' is outside {self.remote_tmp_dir}"

        return True, f"Path validated: {normalized}"

    def require_safe_path(self, file_path: str) -> str:
        """Return the normalized path, or raise SafetyError if it may not be deleted."""
        is_safe, reason = self.validate_deletion_path(file_path)
        if not is_safe:
            self.logger.warning("Blocked remote deletion", path=file_path, reason=reason)
            raise SafetyError(reason)
        return posixpath.normpath(file_path)
