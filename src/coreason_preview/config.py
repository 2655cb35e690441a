from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class PreviewConfig(BaseSettings):
    """
    Configuration for the preview orchestrator and the hybrid executor.
    """

    # Host capability: the container runtime refuses to boot without it.
    isolation_enabled: bool = True

    container_backend: Literal["local", "docker"] = "local"
    docker_image: str = "node:20-slim"
    work_dir: str | None = None  # Local backend: temp dir when unset

    # Remote executors
    remote_url: str = "https://emkc.org/api/v2/piston"
    fallback_url: str | None = None
    fallback_token: str | None = None

    # Timeouts (seconds)
    runtime_timeout: float = 30.0
    remote_timeout: float = 10.0
    fallback_timeout: float = 60.0
    health_timeout: float = 3.0
    install_timeout: float = 180.0
    start_timeout: float = 120.0

    log_cap: int = 100
    runtime_languages: set[str] = {"javascript", "typescript"}

    model_config = SettingsConfigDict(
        env_prefix="COREASON_PREVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
