"""
Validation Service

Runs the fixed battery of health checks against a restored instance. A
failing check is recorded in the report instead of being raised.
"""

import shlex

import structlog

from ..constants import (
    DEFAULT_REDIS_HOST,
    DEFAULT_REDIS_PORT,
    HORIZON_MARKER,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
)
from ..core.env_codec import EnvironmentCodec
from ..core.exceptions import MigrationRuntimeError, SiteMoverError
from ..core.remote.executor import RemoteExecutor
from ..models.enums import CheckName, WorkerStatus
from ..models.host import Host, Site, Worker
from ..models.report import CheckResult, Report
from ..platform.interface import HostPlatform
from ..utils import redis_ping_command, truncate, utc_now_iso
from .discovery import redis_used

logger = structlog.get_logger()


def _failed_check(name: CheckName, error: str) -> CheckResult:
    return CheckResult(name=name, ok=False, details={"error": error})


def _skipped_check(name: CheckName, reason: str) -> CheckResult:
    return CheckResult(name=name, ok=True, details={"skipped": True, "reason": reason})


class ValidationService:
    """Produces a Report for a target instance."""

    def __init__(
        self,
        platform: HostPlatform,
        executor: RemoteExecutor,
        codec: EnvironmentCodec | None = None,
    ):
        self.platform = platform
        self.executor = executor
        self.codec = codec or EnvironmentCodec()
        self.logger = logger.bind(component="validation")

    async def run(
        self,
        target_site: Site,
        healthcheck_url: str | None = "/",
        target_env: str = "",
    ) -> Report:
        """Run every check in order and summarize the results."""
        host = await self.platform.get_host(target_site.server_id)
        if host is None:
            raise MigrationRuntimeError(f"Target server #{target_site.server_id} not found.")

        env = self.codec.parse(target_env)
        workers = await self.platform.list_workers(target_site.id)

        checks = [
            await self._check_http(host, target_site, healthcheck_url),
            await self._check_artisan(host, target_site),
            await self._check_database(host, target_site),
            await self._check_redis(host, env),
            self._check_workers(workers),
            await self._check_horizon(host, target_site, workers),
        ]
        report = Report.from_checks(target_site.id, checks, generated_at=utc_now_iso())

        self.logger.info(
            "Validation complete",
            target_site_id=target_site.id,
            passed=report.summary.passed,
            total=report.summary.total,
            failed=report.failed_checks(),
        )
        return report

    async def _check_http(self, host: Host, site: Site, healthcheck_url: str | None) -> CheckResult:
        target = (healthcheck_url or "").strip() or "/"

        if target.startswith(("http://", "https://")):
            command = f'curl -k -s -o /dev/null -w "%{{http_code}}" {shlex.quote(target)}'
        else:
            path = "/" + target.lstrip("/")
            command = (
                f'curl -k -s -o /dev/null -w "%{{http_code}}" '
                f"-H {shlex.quote('Host: ' + site.domain)} {shlex.quote('http://127.0.0.1' + path)}"
            )

        try:
            output = await self.executor.exec(host, command)
        except SiteMoverError as e:
            return _failed_check(CheckName.HTTP, str(e))

        try:
            status_code = int(output.strip())
        except ValueError:
            status_code = 0

        return CheckResult(
            name=CheckName.HTTP,
            ok=200 <= status_code < 500,
            details={"status_code": status_code, "target": target},
        )

    async def _check_artisan(self, host: Host, site: Site) -> CheckResult:
        command = f"cd {shlex.quote(site.path)} && php artisan --version"
        try:
            output = (await self.executor.exec(host, command, as_user=site.user)).strip()
        except SiteMoverError as e:
            return _failed_check(CheckName.ARTISAN, str(e))

        return CheckResult(
            name=CheckName.ARTISAN, ok="laravel" in output.lower(), details={"output": output}
        )

    async def _check_database(self, host: Host, site: Site) -> CheckResult:
        command = (
            f"cd {shlex.quote(site.path)} && php artisan migrate:status --no-interaction --no-ansi"
        )
        try:
            output = await self.executor.exec(host, command, as_user=site.user)
        except SiteMoverError as e:
            return _failed_check(CheckName.DATABASE, str(e))

        return CheckResult(
            name=CheckName.DATABASE, ok=output.strip() != "", details={"output": truncate(output)}
        )

    async def _check_redis(self, host: Host, env: dict[str, str]) -> CheckResult:
        if not redis_used(env):
            return _skipped_check(CheckName.REDIS, "Redis not configured in environment")

        command = redis_ping_command(
            env.get(REDIS_HOST, DEFAULT_REDIS_HOST),
            env.get(REDIS_PORT, DEFAULT_REDIS_PORT),
            env.get(REDIS_PASSWORD, ""),
        )
        try:
            output = (await self.executor.exec(host, command)).strip()
        except SiteMoverError as e:
            return _failed_check(CheckName.REDIS, str(e))

        return CheckResult(name=CheckName.REDIS, ok="PONG" in output.upper(), details={"output": output})

    def _check_workers(self, workers: list[Worker]) -> CheckResult:
        running = sum(1 for worker in workers if worker.status == WorkerStatus.RUNNING)
        return CheckResult(
            name=CheckName.WORKERS,
            ok=not workers or running > 0,
            details={"total": len(workers), "running": running},
        )

    async def _check_horizon(self, host: Host, site: Site, workers: list[Worker]) -> CheckResult:
        if not any(HORIZON_MARKER in worker.command.lower() for worker in workers):
            return _skipped_check(CheckName.HORIZON, "No horizon worker commands detected")

        command = f"cd {shlex.quote(site.path)} && php artisan horizon:status --no-ansi"
        try:
            output = (await self.executor.exec(host, command, as_user=site.user)).strip()
        except SiteMoverError as e:
            return _failed_check(CheckName.HORIZON, str(e))

        return CheckResult(
            name=CheckName.HORIZON, ok="running" in output.lower(), details={"output": output}
        )
