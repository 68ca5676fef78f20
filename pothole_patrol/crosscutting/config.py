"""Application configuration loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Runtime configuration values.

    Values are read from environment variables with the ``PP_`` prefix and an
    optional ``.env`` file, so the same settings drive the console entry point,
    the container and the tests.
    """

    model_config = SettingsConfigDict(
        env_prefix="PP_",
        env_file=".env",
        extra="ignore",
        protected_namespaces=(),
    )

    # Model
    model_path: str = "models/pothole.onnx"
    input_size: int = Field(640, gt=0)
    num_classes: int = Field(1, gt=0)
    class_labels: dict[int, str] = Field(default_factory=lambda: {0: "pothole"})
    execution_providers: list[str] = Field(default_factory=lambda: ["CPUExecutionProvider"])

    # Detection loop
    confidence_threshold: float = 0.6
    poll_interval_ms: int = Field(1000, gt=0)
    debounce_ms: int = Field(2000, ge=0)
    geolocation_timeout_ms: int = Field(2000, gt=0)
    fallback_latitude: float = Field(-34.603722, ge=-90, le=90)
    fallback_longitude: float = Field(-58.381592, ge=-180, le=180)
    static_latitude: float | None = Field(None, ge=-90, le=90)
    static_longitude: float | None = Field(None, ge=-180, le=180)
    jpeg_quality: float = 0.9

    # Video source
    camera_index: int = 0
    video_path: str | None = None
    video_loop: bool = False
    frame_width: int = Field(1280, gt=0)
    frame_height: int = Field(720, gt=0)
    target_fps: float = Field(30.0, gt=0)

    # Collaborators
    backend_url: str = "http://localhost:3000"
    verify_path: str = "/api/verify"
    http_timeout: float = Field(30.0, gt=0)
    archive_api_key: str | None = None
    archive_upload_url: str = "https://upload.lighthouse.storage/api/v0/add"
    archive_gateway_url: str = "https://gateway.lighthouse.storage/ipfs"
    proof_action: str = "report-pothole"

    # Local state
    history_path: Path | None = None
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    @field_validator("confidence_threshold", "jpeg_quality")
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if not (0 < value <= 1):
            raise ValueError("must be within (0, 1]")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def has_static_position(self) -> bool:
        return self.static_latitude is not None and self.static_longitude is not None

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def geolocation_timeout(self) -> float:
        return self.geolocation_timeout_ms / 1000.0


def load_settings(**overrides) -> AppSettings:
    """Load configuration values from the current environment."""

    return AppSettings(**overrides)


__all__ = ["AppSettings", "load_settings"]
