"""Tests for the validation service."""

import pytest

from site_mover.core.exceptions import MigrationRuntimeError, RemoteExecutionError
from site_mover.models.enums import CheckName, WorkerStatus
from site_mover.models.host import Site, Worker
from tests.fakes import TARGET_SERVER_ID

TARGET_ENV = "DB_DATABASE=shop\nQUEUE_CONNECTION=redis\nREDIS_HOST=127.0.0.1\nREDIS_PASSWORD=hunter2\n"


@pytest.fixture
def target_site(platform):
    site = Site(
        id=30,
        server_id=TARGET_SERVER_ID,
        domain="shop-new.test",
        path="/home/forge1/shop-new.test",
        user="forge1",
    )
    platform.sites[site.id] = site
    return site


@pytest.fixture
def horizon_worker(platform, target_site):
    worker = Worker(
        id=40,
        server_id=TARGET_SERVER_ID,
        site_id=target_site.id,
        name="shop-horizon",
        command="php /home/forge1/shop-new.test/artisan horizon",
        user="forge1",
    )
    platform.workers[worker.id] = worker
    return worker


def check(report, name):
    return next(c for c in report.checks if c.name == name)


async def test_all_checks_pass(validation, target_site, horizon_worker):
    report = await validation.run(target_site, "/", TARGET_ENV)

    assert [c.name for c in report.checks] == list(CheckName)
    assert report.summary.total == 6
    assert report.summary.passed == 6
    assert report.target_site_id == target_site.id


async def test_http_check_targets_local_vhost(validation, executor, target_site):
    report = await validation.run(target_site, "health", "")

    curl = next(cmd for cmd in executor.commands() if cmd.startswith("curl"))
    assert "-H 'Host: shop-new.test' http://127.0.0.1/health" in curl
    assert check(report, CheckName.HTTP).details == {"status_code": 200, "target": "health"}


async def test_http_check_uses_absolute_url(validation, executor, target_site):
    await validation.run(target_site, "https://shop-new.test/up", "")

    curl = next(cmd for cmd in executor.commands() if cmd.startswith("curl"))
    assert curl.endswith("https://shop-new.test/up")
    assert "-H" not in curl


@pytest.mark.parametrize(
    "output,status_code,ok",
    [("404", 404, True), ("499", 499, True), ("500", 500, False), ("garbage", 0, False)],
)
async def test_http_status_ranges(validation, executor, target_site, output, status_code, ok):
    executor.script("curl", output)

    report = await validation.run(target_site, "/", "")

    http = check(report, CheckName.HTTP)
    assert http.ok is ok
    assert http.details["status_code"] == status_code


async def test_failed_command_is_recorded_not_raised(validation, executor, target_site):
    executor.script("artisan --version", RemoteExecutionError("php: not found", exit_status=127))

    report = await validation.run(target_site, "/", "")

    artisan = check(report, CheckName.ARTISAN)
    assert artisan.ok is False
    assert artisan.details == {"error": "php: not found"}
    assert report.failed_checks() == ["artisan"]


async def test_checks_run_as_site_user(validation, executor, target_site):
    await validation.run(target_site, "/", "")

    users = {cmd.split(" && ")[1]: user for _, cmd, user in executor.calls if " && " in cmd}
    assert users["php artisan --version"] == "forge1"


async def test_redis_and_horizon_skipped_when_unused(validation, executor, target_site):
    report = await validation.run(target_site, "/", "DB_DATABASE=shop\n")

    for name in (CheckName.REDIS, CheckName.HORIZON):
        result = check(report, name)
        assert result.ok is True
        assert result.details["skipped"] is True
    assert not any("redis-cli" in cmd for cmd in executor.commands())


async def test_redis_ping_uses_target_credentials(validation, executor, target_site):
    executor.script("redis-cli", "NOAUTH Authentication required.")

    report = await validation.run(target_site, "/", TARGET_ENV)

    ping = next(cmd for cmd in executor.commands() if "redis-cli" in cmd)
    assert ping == "redis-cli -h 127.0.0.1 -p 6379 -a hunter2 ping"
    assert check(report, CheckName.REDIS).ok is False


async def test_workers_check(validation, platform, target_site, horizon_worker):
    horizon_worker.status = WorkerStatus.FAILED

    report = await validation.run(target_site, "/", "")

    workers = check(report, CheckName.WORKERS)
    assert workers.ok is False
    assert workers.details == {"total": 1, "running": 0}


async def test_no_workers_passes(validation, target_site):
    report = await validation.run(target_site, "/", "")

    assert check(report, CheckName.WORKERS).ok is True


async def test_database_output_is_truncated(validation, executor, target_site):
    executor.script("migrate:status", "x" * 2000)

    report = await validation.run(target_site, "/", "")

    assert check(report, CheckName.DATABASE).details["output"] == "x" * 500 + "..."


async def test_unknown_host_raises(validation):
    site = Site(id=99, server_id=999, domain="ghost.test", path="/g", user="g")

    with pytest.raises(MigrationRuntimeError):
        await validation.run(site)
