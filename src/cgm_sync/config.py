"""Settings loaded from ``GLOOKO_*`` environment variables (or a .env file)."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from cgm_sync.sources.glooko import DEFAULT_API_URL, DEFAULT_WEB_URL, EXTERNAL_API_URL
from cgm_sync.transform import TransformConfig
from cgm_sync.window import FullWindowPolicy


class Settings(BaseSettings):
    """Runtime configuration for a sync run."""

    # --- Portal session ---
    patient_id: str = ""
    session_cookie: str = ""
    api_url: str = DEFAULT_API_URL
    web_url: str = DEFAULT_WEB_URL
    external_api_url: str = EXTERNAL_API_URL
    use_external_api: bool = True
    http_timeout_seconds: float = 30.0

    # --- Sync ---
    checkpoint_file: Path = Path("glooko-checkpoint.json")
    lookback_hours: float = 24
    full_window_policy: FullWindowPolicy = FullWindowPolicy.ROLLING
    max_retries: int = 3
    retry_base_delay_seconds: float = 5.0

    # --- Records ---
    timestamp_correction_hours: float = 2.0  # upstream labels UTC+2 as UTC
    display_timezone: str = "Europe/Helsinki"
    device_label: str = "glooko-cgm"
    source_name: str = "glooko"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="GLOOKO_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    def transform_config(self) -> TransformConfig:
        return TransformConfig(
            timestamp_correction=timedelta(hours=self.timestamp_correction_hours),
            display_timezone=self.display_timezone,
            device_label=self.device_label,
            source=self.source_name,
        )
