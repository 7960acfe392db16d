"""Core exceptions for Site Mover operations."""


class SiteMoverError(Exception):
    """Base exception for Site Mover operations."""


class ValidationInputError(SiteMoverError):
    """Caller-supplied migration options are missing or malformed."""


class MissingCredentialsError(SiteMoverError):
    """Source database credentials are not available."""


class RemoteExecutionError(SiteMoverError):
    """Remote command exited non-zero or the host was unreachable."""

    def __init__(
        self,
        message: str,
        exit_status: int | None = None,
        stderr: str = "",
        command: str = "",
    ):
        self.exit_status = exit_status
        self.stderr = stderr
        self.command = command
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class TransferError(SiteMoverError):
    """File upload or download failed."""


class MigrationRuntimeError(SiteMoverError, RuntimeError):
    """Domain rule violated while migrating (duplicate domain, database not ready, ...)."""


class PrerequisiteError(MigrationRuntimeError):
    """Target host is missing a required service or runtime."""


class InvalidTransitionError(SiteMoverError):
    """Migration record cannot move to the requested status."""


class SafetyError(SiteMoverError):
    """Safety validation blocked a destructive remote operation."""
