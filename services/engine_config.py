"""Centralized sheet engine configuration.

Single source of truth for engine and API settings.
Reads from environment variables with sensible defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent


@dataclass
class EngineSettings:
    """Sheet engine settings loaded from environment.

    Usage:
        settings = get_engine_settings()
        print(settings.stream_chunk_size)  # 65536
    """
    # Bytes handed to the pull parser per step while streaming a worksheet
    stream_chunk_size: int = 1 << 16

    # Upload guardrails
    max_upload_bytes: int = 50 * 1024 * 1024

    upload_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "uploads")
    output_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "outputs")

    # Per-client request budgets (see middleware/rate_limit.py)
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 120
    rate_limit_writes_per_minute: int = 30
    rate_limit_burst: int = 20

    log_level: str = "INFO"


def _load_settings_from_env() -> EngineSettings:
    """Load engine settings from environment variables."""
    settings = EngineSettings()

    if os.getenv("SHEET_STREAM_CHUNK_SIZE"):
        settings.stream_chunk_size = max(1, int(os.getenv("SHEET_STREAM_CHUNK_SIZE")))
    if os.getenv("SHEET_MAX_UPLOAD_BYTES"):
        settings.max_upload_bytes = int(os.getenv("SHEET_MAX_UPLOAD_BYTES"))

    if os.getenv("SHEET_UPLOAD_DIR"):
        settings.upload_dir = Path(os.getenv("SHEET_UPLOAD_DIR"))
    if os.getenv("SHEET_OUTPUT_DIR"):
        settings.output_dir = Path(os.getenv("SHEET_OUTPUT_DIR"))

    if os.getenv("DISABLE_RATE_LIMIT"):
        settings.rate_limit_enabled = False
    if os.getenv("SHEET_RATE_LIMIT_PER_MINUTE"):
        settings.rate_limit_per_minute = int(os.getenv("SHEET_RATE_LIMIT_PER_MINUTE"))
    if os.getenv("SHEET_RATE_LIMIT_WRITES_PER_MINUTE"):
        settings.rate_limit_writes_per_minute = int(os.getenv("SHEET_RATE_LIMIT_WRITES_PER_MINUTE"))
    if os.getenv("SHEET_RATE_LIMIT_BURST"):
        settings.rate_limit_burst = int(os.getenv("SHEET_RATE_LIMIT_BURST"))

    settings.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return settings


# Singleton instance
_settings: EngineSettings | None = None


def get_engine_settings() -> EngineSettings:
    """Get the engine settings singleton.

    Settings are loaded once from environment on first access.
    """
    global _settings
    if _settings is None:
        _settings = _load_settings_from_env()
    return _settings


def reload_engine_settings() -> EngineSettings:
    """Force reload settings from environment.

    Useful for testing or after env changes.
    """
    global _settings
    _settings = _load_settings_from_env()
    return _settings
