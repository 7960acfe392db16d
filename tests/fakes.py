"""Test doubles and inventory builders shared by the test suite."""

from pathlib import Path
from typing import Any

from site_mover.core.remote.executor import RemoteExecutor
from site_mover.models.host import CronJob, Database, DatabaseUser, Host, Site, Worker
from site_mover.platform.in_memory import InMemoryHostPlatform

SOURCE_SERVER_ID = 1
TARGET_SERVER_ID = 2
SOURCE_SITE_ID = 10
TARGET_DOMAIN = "shop-new.test"

SOURCE_ENV = """APP_NAME=Shop
APP_URL=https://shop.test
DB_CONNECTION=mysql
DB_HOST=127.0.0.1
DB_PORT=3306
DB_DATABASE=shop
DB_USERNAME=shop
DB_PASSWORD=secret
QUEUE_CONNECTION=redis
REDIS_HOST=127.0.0.1
"""

# Output that makes every validation check pass
HEALTHY_TARGET_RULES: list[tuple[str, Any]] = [
    ("curl", "200"),
    ("artisan --version", "Laravel Framework 11.9.2"),
    ("migrate:status", "2024_01_01_000000_create_users_table ...... Ran"),
    ("ping", "PONG"),
    ("horizon:status", "Horizon is running."),
]


class FakeRemoteExecutor(RemoteExecutor):
    """Scripted executor: the last rule whose pattern occurs in a command wins.

    A rule result may be a string (returned as stdout) or an exception (raised).
    Downloads write bytes derived from the remote path so checksums differ.
    """

    def __init__(self, settings=None):
        super().__init__(settings)
        self.rules: list[tuple[str, Any]] = []
        self.calls: list[tuple[int, str, str | None]] = []
        self.uploads: list[tuple[int, str, str]] = []
        self.downloads: list[tuple[int, str, str]] = []
        self.uploaded: dict[str, bytes] = {}
        self.download_errors: dict[str, Exception] = {}

    def script(self, pattern: str, result: Any) -> None:
        self.rules.append((pattern, result))

    def commands(self, host_id: int | None = None) -> list[str]:
        return [cmd for hid, cmd, _ in self.calls if host_id is None or hid == host_id]

    async def exec(self, host: Host, command: str, as_user: str | None = None) -> str:
        self.calls.append((host.id, command, as_user))
        for pattern, result in reversed(self.rules):
            if pattern in command:
                if isinstance(result, Exception):
                    raise result
                return result
        return ""

    async def upload(self, host: Host, local_path: Path | str, remote_path: str) -> None:
        self.uploads.append((host.id, str(local_path), remote_path))
        if Path(local_path).is_file():
            self.uploaded[remote_path] = Path(local_path).read_bytes()

    async def download(self, host: Host, remote_path: str, local_path: Path | str) -> None:
        self.downloads.append((host.id, remote_path, str(local_path)))
        for pattern, error in self.download_errors.items():
            if pattern in remote_path:
                Path(local_path).write_bytes(b"partial")
                raise error
        Path(local_path).write_bytes(f"contents of {remote_path}".encode())


def make_host(host_id: int, hostname: str, **overrides) -> Host:
    data = {
        "id": host_id,
        "name": hostname.split(".")[0],
        "hostname": hostname,
        "user": "forge",
        "webserver": "nginx",
        "database": "mysql",
        "process_manager": "supervisor",
        "memory_database": "redis",
        "php_versions": ["php82", "php83"],
    }
    data.update(overrides)
    return Host(**data)


def build_platform(target_overrides: dict[str, Any] | None = None) -> InMemoryHostPlatform:
    """Source host 1 running shop.test (site 10) and an empty, capable target host 2."""
    source_site = Site(
        id=SOURCE_SITE_ID,
        server_id=SOURCE_SERVER_ID,
        domain="shop.test",
        path="/home/forge/shop.test",
        user="forge",
        php_version="php82",
        repository="acme/shop",
        branch="main",
        deployment_script="cd /home/forge/shop.test && git pull origin main",
    )

    return InMemoryHostPlatform(
        hosts=[
            make_host(SOURCE_SERVER_ID, "source.test"),
            make_host(TARGET_SERVER_ID, "target.test", **(target_overrides or {})),
        ],
        sites=[source_site],
        environments={SOURCE_SITE_ID: SOURCE_ENV},
        databases=[
            Database(
                id=1,
                server_id=SOURCE_SERVER_ID,
                name="shop",
                charset="utf8mb4",
                collation="utf8mb4_unicode_ci",
            )
        ],
        database_users=[
            DatabaseUser(
                id=1,
                server_id=SOURCE_SERVER_ID,
                username="shop",
                password="secret",
                host="localhost",
                databases=["shop"],
            ),
            DatabaseUser(
                id=2,
                server_id=SOURCE_SERVER_ID,
                username="reporting",
                password="readonly",
                host="10.0.0.5",
                permission="read-only",
                databases=["analytics"],
            ),
        ],
        cron_jobs=[
            CronJob(
                id=1,
                server_id=SOURCE_SERVER_ID,
                site_id=SOURCE_SITE_ID,
                command="php /home/forge/shop.test/artisan schedule:run",
                user="forge",
            ),
            CronJob(
                id=2,
                server_id=SOURCE_SERVER_ID,
                site_id=SOURCE_SITE_ID,
                command="/usr/local/bin/platform-heartbeat",
                user="root",
                hidden=True,
            ),
        ],
        workers=[
            Worker(
                id=1,
                server_id=SOURCE_SERVER_ID,
                site_id=SOURCE_SITE_ID,
                name="shop-horizon",
                command="php /home/forge/shop.test/artisan horizon",
                user="forge",
            )
        ],
    )
