"""Centralized constants for Site Mover to eliminate duplicate strings."""

# Storage
DEFAULT_STORAGE_PATH = "storage/app/public"

# Remote temp artifact naming
REMOTE_ARTIFACT_PREFIX = "site-mover"

# Local artifact file names
DB_DUMP_FILENAME = "db.sql.gz"
STORAGE_ARCHIVE_FILENAME = "storage-{index}.tar.gz"

# Database connection families
POSTGRES_CONNECTIONS = ("pgsql", "postgres", "postgresql")
DEFAULT_CONNECTION = "mysql"
DEFAULT_POSTGRES_PORT = "5432"
DEFAULT_MYSQL_PORT = "3306"
DEFAULT_CHARSET = "utf8mb4"
DEFAULT_COLLATION = "utf8mb4_unicode_ci"
DEFAULT_DB_HOST = "127.0.0.1"
LOCAL_DB_HOSTS = ("localhost", "127.0.0.1")

# Redis
DEFAULT_REDIS_HOST = "127.0.0.1"
DEFAULT_REDIS_PORT = "6379"

# Environment keys
DB_CONNECTION = "DB_CONNECTION"
DB_DATABASE = "DB_DATABASE"
DB_HOST = "DB_HOST"
DB_PORT = "DB_PORT"
DB_USERNAME = "DB_USERNAME"
DB_PASSWORD = "DB_PASSWORD"
APP_URL = "APP_URL"
QUEUE_CONNECTION = "QUEUE_CONNECTION"
CACHE_STORE = "CACHE_STORE"
REDIS_HOST = "REDIS_HOST"
REDIS_PORT = "REDIS_PORT"
REDIS_PASSWORD = "REDIS_PASSWORD"
REDIS_URL = "REDIS_URL"

# Naming
SITE_USER_FALLBACK = "site"
DB_USER_FALLBACK = "site_mover"
WORKER_NAME_FALLBACK = "site-worker"
FALLBACK_DB_USER_PREFIX = "migr_"
NAME_MAX_LENGTH = 24
NAME_SUFFIX_BASE_LENGTH = 20

# Worker commands
HORIZON_MARKER = "horizon"
DEFAULT_CRON_FREQUENCY = "* * * * *"

# Output truncation
OUTPUT_TRUNCATE_LIMIT = 500

# Date/Time Format
HISTORY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
