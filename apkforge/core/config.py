"""
Configuration management for apkforge.

Provides centralized, type-safe configuration with environment variable overrides
and sensible defaults for the server, storage and pipeline components.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists (looks in cwd and parent directories)
load_dotenv()

MB = 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=5000, ge=1, le=65535, description="Bind port")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )


class StorageConfig(BaseModel):
    """Filesystem layout for uploads and per-project working directories."""

    uploads_path: Path = Field(default=Path("./uploads"), description="Root for uploaded archives")
    builds_path: Path = Field(default=Path("./builds"), description="Root for project working directories")


class UploadConfig(BaseModel):
    """Upload validation limits."""

    max_size_bytes: int = Field(default=500 * MB, ge=1, description="Maximum accepted upload size")
    large_file_warning_bytes: int = Field(default=100 * MB, ge=1, description="Size above which a warning is issued")
    max_filename_length: int = Field(default=255, ge=1)
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: ["application/zip", "application/x-zip-compressed", "application/x-zip"],
    )


class ToolsConfig(BaseModel):
    """External tool invocation configuration."""

    enabled: bool = Field(default=True, description="Invoke external toolchains at all")
    timeout_overrides: dict[str, float] = Field(
        default_factory=dict,
        description="Per-tool timeout overrides in seconds, keyed by executable name",
    )


class PackagingConfig(BaseModel):
    """Artifact packaging limits."""

    max_asset_bytes: int = Field(default=1 * MB, ge=1, description="Largest project file copied into the artifact")
    max_assets_per_directory: int = Field(default=5, ge=1, description="Files sampled from each asset directory")


class PipelineConfig(BaseModel):
    """Phase orchestration configuration."""

    auto_continue: bool = Field(default=True, description="Chain analysis, setup and build after upload")
    attempt_native_build: bool = Field(
        default=False, description="Try the framework's native build command during the build phase"
    )


class Config(BaseModel):
    """Root configuration for apkforge."""

    project_name: str = Field(default="apkforge", description="Project identifier")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    packaging: PackagingConfig = Field(default_factory=PackagingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls) -> Config:
        """Create configuration from environment variables."""
        return cls(
            log_level=os.environ.get("APKFORGE_LOG_LEVEL", "INFO"),  # type: ignore
            server=ServerConfig(
                host=os.environ.get("APKFORGE_HOST", "0.0.0.0"),
                port=int(os.environ.get("APKFORGE_PORT", "5000")),
            ),
            storage=StorageConfig(
                uploads_path=Path(os.environ.get("APKFORGE_UPLOADS_PATH", "./uploads")),
                builds_path=Path(os.environ.get("APKFORGE_BUILDS_PATH", "./builds")),
            ),
            upload=UploadConfig(
                max_size_bytes=int(os.environ.get("APKFORGE_MAX_UPLOAD_MB", "500")) * MB,
            ),
            tools=ToolsConfig(
                enabled=_env_bool("APKFORGE_TOOLS_ENABLED", True),
            ),
            pipeline=PipelineConfig(
                auto_continue=_env_bool("APKFORGE_AUTO_CONTINUE", True),
                attempt_native_build=_env_bool("APKFORGE_NATIVE_BUILD", False),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()
