"""Runtime settings for Site Mover operations.

Provides centralized timeout and storage configuration using Pydantic
BaseSettings with environment variable support for operational tuning.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SiteMoverSettings(BaseSettings):
    """Site Mover timeout and storage configuration."""

    artifact_dir: Path = Field(
        default=Path("storage/site-mover"),
        description="Local directory holding per-migration artifact folders",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for the JSON migration record store"
    )
    remote_tmp_dir: str = Field(
        default="/tmp",  # noqa: S108 - remote temp dir, not local
        description="Remote directory for temporary dump and archive files",
    )
    command_timeout: int = Field(1800, description="Remote command timeout in seconds")
    transfer_timeout: int = Field(1800, description="File transfer timeout in seconds")
    connect_timeout: int = Field(30, description="SSH connect timeout in seconds")
    pipeline_timeout: int = Field(3600, description="Whole-pipeline timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="SITE_MOVER_", env_file=".env", extra="ignore")


# Global settings instance
site_mover_settings = SiteMoverSettings()
