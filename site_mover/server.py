"""
Site Mover MCP Server

FastMCP server exposing site scan, migration, validation and history tools.
Migrations run as background tasks and report progress through their records.
"""

import argparse
import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Any, Literal

from fastmcp import FastMCP
from pydantic import Field

from .core.config_loader import DEFAULT_CONFIG_FILE, SiteMoverConfig, load_config
from .core.exceptions import SiteMoverError
from .core.logging_config import get_server_logger, setup_logging
from .core.remote.ssh import SSHRemoteExecutor
from .core.settings import SiteMoverSettings, site_mover_settings
from .platform.remote_env import RemoteEnvHostPlatform
from .repositories.json_file import JsonFileMigrationRepository
from .services import (
    BackupService,
    DiscoveryService,
    MigrationOrchestrator,
    RestoreService,
    SiteMoverActions,
    ValidationService,
)


class SiteMoverServer:
    """FastMCP server wiring the platform, executor, store and services together."""

    def __init__(self, config: SiteMoverConfig, settings: SiteMoverSettings | None = None):
        self.config = config
        self.settings = settings or site_mover_settings
        self.logger = get_server_logger()

        self.executor = SSHRemoteExecutor(self.settings)
        self.platform = RemoteEnvHostPlatform.from_config(config, self.executor)
        self.repository = JsonFileMigrationRepository(self.settings.data_dir)

        self.discovery = DiscoveryService(self.platform, self.executor)
        self.backup = BackupService(self.platform, self.executor, self.repository, self.settings)
        self.restore = RestoreService(self.platform, self.executor, self.repository, self.settings)
        self.validation = ValidationService(self.platform, self.executor)
        self.orchestrator = MigrationOrchestrator(
            self.platform,
            self.repository,
            self.discovery,
            self.backup,
            self.restore,
            self.validation,
            self.settings,
        )
        self.actions = SiteMoverActions(
            self.platform, self.repository, self.discovery, self.validation
        )

        self._background_tasks: set[asyncio.Task] = set()

        # FastMCP app will be created later to prevent auto-start
        self.app: FastMCP | None = None

        self.logger.info(
            "Site Mover server initialized",
            hosts=[host.id for host in config.hosts],
            instances=len(config.instances),
            server_config=config.server.model_dump(),
            artifact_dir=str(self.settings.artifact_dir),
        )

    def _initialize_app(self) -> None:
        """Initialize the FastMCP app and register tools."""
        self.app = FastMCP("Site Mover")

        self.app.tool(
            self.site_scan,
            annotations={
                "title": "Scan Site",
                "readOnlyHint": False,  # Stores a scan record
                "destructiveHint": False,
                "idempotentHint": False,
                "openWorldHint": True,  # Probes the source host over SSH
            },
        )
        self.app.tool(
            self.site_migrate,
            annotations={
                "title": "Migrate Site",
                "readOnlyHint": False,
                "destructiveHint": False,  # Source is never modified
                "idempotentHint": False,  # Each call provisions a new target
                "openWorldHint": True,
            },
        )
        self.app.tool(
            self.site_validate,
            annotations={
                "title": "Validate Migrated Site",
                "readOnlyHint": False,  # Overwrites the stored report
                "destructiveHint": False,
                "idempotentHint": True,
                "openWorldHint": True,
            },
        )
        self.app.tool(
            self.site_history,
            annotations={
                "title": "Migration History",
                "readOnlyHint": True,
                "destructiveHint": False,
                "idempotentHint": True,
                "openWorldHint": False,
            },
        )

    # Tools

    async def site_scan(
        self,
        source_site_id: Annotated[int, Field(ge=1, description="Source site id")],
        storage_paths: Annotated[
            str,
            Field(default="", description="Extra storage paths, one per line"),
        ] = "",
    ) -> dict[str, Any]:
        """Inspect a site and record what a migration would copy.

        The default public storage path is always included.
        """
        try:
            record, message = await self.actions.scan(source_site_id, storage_paths)
        except SiteMoverError as e:
            return {"success": False, "error": str(e), "source_site_id": source_site_id}

        return {
            "success": True,
            "message": message,
            "migration_id": record.id,
            "status": record.status.value,
            "manifest": record.manifest.model_dump(mode="json") if record.manifest else None,
        }

    async def site_migrate(
        self,
        source_site_id: Annotated[int, Field(ge=1, description="Source site id")],
        target_server_id: Annotated[int, Field(ge=1, description="Target server id")],
        target_domain: Annotated[str, Field(max_length=255, description="Target domain")],
        target_user: Annotated[
            str, Field(default="", max_length=32, description="Target site user")
        ] = "",
        db_name: Annotated[
            str, Field(default="", max_length=255, description="Target database name")
        ] = "",
        db_user_strategy: Annotated[
            Literal["clone", "create"],
            Field(default="clone", description="Clone source database users or create one"),
        ] = "clone",
        storage_paths: Annotated[
            str, Field(default="", description="Extra storage paths, one per line")
        ] = "",
        include_env: Annotated[
            bool, Field(default=True, description="Copy the source .env to the target")
        ] = True,
        horizon_mode: Annotated[
            Literal["auto", "horizon", "queue-work"],
            Field(default="auto", description="Worker command rewrite mode"),
        ] = "auto",
        downtime_mode: Annotated[
            Literal["test", "final-sync"],
            Field(default="test", description="Recorded cutover intent"),
        ] = "test",
        run_database_migrations: Annotated[
            bool, Field(default=False, description="Run artisan migrate after restore")
        ] = False,
        healthcheck_url: Annotated[
            str, Field(default="/", max_length=255, description="Path or URL for the HTTP check")
        ] = "/",
    ) -> dict[str, Any]:
        """Queue a migration of a site to another server and run it in the background.

        Poll ``site_history`` for progress.
        """
        raw_options = {
            "target_server_id": target_server_id,
            "target_domain": target_domain,
            "target_user": target_user,
            "db_name": db_name,
            "db_user_strategy": db_user_strategy,
            "storage_paths": storage_paths,
            "include_env": include_env,
            "horizon_mode": horizon_mode,
            "downtime_mode": downtime_mode,
            "run_database_migrations": run_database_migrations,
            "healthcheck_url": healthcheck_url,
        }
        try:
            record, message = await self.actions.migrate(source_site_id, raw_options)
        except SiteMoverError as e:
            return {"success": False, "error": str(e), "source_site_id": source_site_id}

        self._schedule_migration(record.id)

        return {
            "success": True,
            "message": message,
            "migration_id": record.id,
            "status": record.status.value,
        }

    async def site_validate(
        self,
        source_site_id: Annotated[int, Field(ge=1, description="Source site id")],
        target_site_id: Annotated[int, Field(ge=1, description="Migrated target site id")],
        healthcheck_url: Annotated[
            str, Field(default="/", max_length=255, description="Path or URL for the HTTP check")
        ] = "/",
    ) -> dict[str, Any]:
        """Re-run the health checks against a migrated site."""
        try:
            report, message = await self.actions.validate(
                source_site_id, target_site_id, healthcheck_url
            )
        except SiteMoverError as e:
            return {"success": False, "error": str(e), "target_site_id": target_site_id}

        return {
            "success": True,
            "message": message,
            "report": report.model_dump(mode="json"),
        }

    async def site_history(
        self,
        source_site_id: Annotated[int, Field(ge=1, description="Source site id")],
        migration_id: Annotated[
            int | None, Field(default=None, description="Migration id (defaults to latest)")
        ] = None,
    ) -> dict[str, Any]:
        """Show the status of a migration and the most recent runs for a site."""
        try:
            summary = await self.actions.history(source_site_id, migration_id)
        except SiteMoverError as e:
            return {"success": False, "error": str(e), "source_site_id": source_site_id}

        return {
            "success": True,
            "summary": summary,
            "recent": await self.actions.recent_summary(source_site_id),
        }

    # Background execution

    def _schedule_migration(self, migration_id: int) -> asyncio.Task:
        task = asyncio.create_task(
            self.orchestrator.run_with_timeout(migration_id),
            name=f"site-mover-migration-{migration_id}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._on_migration_done)
        self.logger.info("Migration scheduled", migration_id=migration_id)
        return task

    def _on_migration_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            self.logger.warning("Migration task cancelled", task=task.get_name())
            return

        error = task.exception()
        if error is not None:
            # The failure is already recorded on the migration record
            self.logger.error(
                "Migration task finished with error",
                task=task.get_name(),
                error=str(error) or error.__class__.__name__,
            )

    def run(self) -> None:
        """Run the FastMCP server."""
        try:
            self._initialize_app()

            self.logger.info(
                "Starting Site Mover server",
                host=self.config.server.host,
                port=self.config.server.port,
            )

            # FastMCP.run() is synchronous and manages its own event loop
            if self.app is None:
                raise RuntimeError("FastMCP app not initialized")
            self.app.run(
                transport="http",
                host=self.config.server.host,
                port=self.config.server.port,
            )

        except Exception as e:
            self.logger.error("Server startup failed", error=str(e))
            raise


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    default_host = os.getenv("FASTMCP_HOST", "127.0.0.1")
    default_port = int(os.getenv("FASTMCP_PORT", "8000"))
    default_log_level = os.getenv("LOG_LEVEL", "INFO")
    default_config = os.getenv("SITE_MOVER_CONFIG", DEFAULT_CONFIG_FILE)

    parser = argparse.ArgumentParser(description="Site Mover MCP server")
    parser.add_argument("--host", default=default_host, help="Server host")
    parser.add_argument("--port", type=int, default=default_port, help="Server port")
    parser.add_argument("--config", default=default_config, help="Inventory file path")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )

    return parser.parse_args(argv)


def main() -> None:
    """Main entry point."""
    from dotenv import load_dotenv

    load_dotenv()
    args = parse_args()

    log_dir = _setup_log_directory()
    logger = _setup_logging_system(args, log_dir)

    config = _load_and_configure(args, logger)
    if config is None:  # Validation-only mode
        return

    server = SiteMoverServer(config)
    _run_server(server, logger)


def _setup_log_directory() -> str | None:
    """Setup log directory with fallback options."""
    log_dir_candidates = [
        os.getenv("LOG_DIR"),
        str(Path("logs")),
        str(Path.home() / ".local" / "share" / "site-mover" / "logs"),
        str(Path(tempfile.gettempdir()) / "site-mover-logs"),
    ]

    for candidate in log_dir_candidates:
        if candidate:
            try:
                candidate_path = Path(candidate)
                candidate_path.mkdir(parents=True, exist_ok=True)
                if candidate_path.is_dir() and os.access(candidate_path, os.W_OK):
                    return str(candidate_path)
            except OSError:
                continue

    print("Warning: Unable to create log directory, using console-only logging")
    return None


def _setup_logging_system(args: argparse.Namespace, log_dir: str | None):
    """Setup logging system with error handling."""
    try:
        max_file_size_mb = int(os.getenv("LOG_FILE_SIZE_MB", "10"))
        if max_file_size_mb < 1 or max_file_size_mb > 100:
            max_file_size_mb = 10
    except ValueError:
        max_file_size_mb = 10

    setup_logging(
        log_dir=log_dir or tempfile.gettempdir(),
        log_level=args.log_level,
        max_file_size_mb=max_file_size_mb,
    )
    return get_server_logger()


def _load_and_configure(args: argparse.Namespace, logger) -> SiteMoverConfig | None:
    """Load configuration, returning None for validation-only mode."""
    config = load_config(args.config)

    # Override server config from CLI args
    config.server.host = args.host
    config.server.port = args.port
    config.server.log_level = args.log_level

    if args.validate_config:
        logger.info(
            "Configuration is valid",
            config_file=config.config_file,
            hosts=len(config.hosts),
            instances=len(config.instances),
        )
        return None

    return config


def _run_server(server: SiteMoverServer, logger) -> None:
    """Run server with error handling."""
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
