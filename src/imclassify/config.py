"""Environment-based configuration for imclassify."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from IMCLASSIFY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMCLASSIFY_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Packaged assets
    assets_dir: str = "assets"
    labels_file: str = "labels.txt"
    model_extension: str = ".onnx"
    default_model: str | None = None
    assets_repo_id: str | None = None

    # Model input/output fallbacks
    fallback_input_size: int = Field(default=28, ge=1)
    fallback_class_count: int = Field(default=1001, ge=1)
    top_k: int = Field(default=3, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Worker context
    max_workers: int = Field(default=1, ge=1)
    operation_timeout: float | None = Field(default=None, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
