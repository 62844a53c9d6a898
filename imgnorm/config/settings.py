"""Library configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _load_env_file(path: str = ".env") -> None:
    """Populate os.environ from the provided .env file if it exists."""

    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Centralised normalisation settings based on OS environment variables."""

    environment: str = "dev"
    log_level: str = "INFO"

    raster_timeout: float = 10.0

    quality_step: float = 0.05
    min_quality: float = 0.1
    max_attempts: int = 15
    safety_margin: float = 0.9
    min_scale: float = 0.5
    resize_quality: float = 0.8
    allow_downscale: bool = True
    orientation_quality: float = 0.92

    fit_max_bytes: int = 1024 * 1024
    upload_max_bytes: int = 5 * 1024 * 1024
    max_input_bytes: int = 50 * 1024 * 1024

    portrait_min_width: int = 400
    portrait_min_height: int = 800
    portrait_aspect_ratio: float = 0.75
    portrait_tolerance: float = 0.05


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _build_settings() -> Settings:
    _load_env_file()

    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        raster_timeout=float(os.getenv("IMGNORM_RASTER_TIMEOUT", "10")),
        quality_step=float(os.getenv("IMGNORM_QUALITY_STEP", "0.05")),
        min_quality=float(os.getenv("IMGNORM_MIN_QUALITY", "0.1")),
        max_attempts=int(os.getenv("IMGNORM_MAX_ATTEMPTS", "15")),
        safety_margin=float(os.getenv("IMGNORM_SAFETY_MARGIN", "0.9")),
        min_scale=float(os.getenv("IMGNORM_MIN_SCALE", "0.5")),
        resize_quality=float(os.getenv("IMGNORM_RESIZE_QUALITY", "0.8")),
        allow_downscale=_env_flag("IMGNORM_ALLOW_DOWNSCALE", True),
        orientation_quality=float(os.getenv("IMGNORM_ORIENTATION_QUALITY", "0.92")),
        fit_max_bytes=int(os.getenv("IMGNORM_FIT_MAX_BYTES", str(1024 * 1024))),
        upload_max_bytes=int(os.getenv("IMGNORM_UPLOAD_MAX_BYTES", str(5 * 1024 * 1024))),
        max_input_bytes=int(os.getenv("IMGNORM_MAX_INPUT_BYTES", str(50 * 1024 * 1024))),
        portrait_min_width=int(os.getenv("PORTRAIT_MIN_WIDTH", "400")),
        portrait_min_height=int(os.getenv("PORTRAIT_MIN_HEIGHT", "800")),
        portrait_aspect_ratio=float(os.getenv("PORTRAIT_ASPECT_RATIO", "0.75")),
        portrait_tolerance=float(os.getenv("PORTRAIT_TOLERANCE", "0.05")),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
