from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..modules.deeplinks.domain.models import DEFAULT_STORAGE_KEY_PREFIX, DeepLinkConfig, Platform


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    telegram_bot_token: str = Field(..., alias="TELEGRAM_BOT_TOKEN")

    app_scheme: str = Field(..., min_length=1, alias="DEEPLINK_APP_SCHEME")
    # Comma separated lists, parsed by the properties below
    valid_domains_raw: str = Field(..., alias="DEEPLINK_VALID_DOMAINS")
    valid_paths_raw: Optional[str] = Field(None, alias="DEEPLINK_VALID_PATHS")

    platform: Optional[Platform] = Field(None, alias="DEEPLINK_PLATFORM")
    enable_android_recovery: bool = Field(True, alias="DEEPLINK_ENABLE_ANDROID_RECOVERY")
    enable_ios_recovery: bool = Field(False, alias="DEEPLINK_ENABLE_IOS_RECOVERY")
    max_link_age_hours: int = Field(7 * 24, ge=1, alias="DEEPLINK_MAX_LINK_AGE_HOURS")
    attribution_timeout_seconds: float = Field(10.0, gt=0, le=120, alias="DEEPLINK_ATTRIBUTION_TIMEOUT")
    dedup_window_seconds: float = Field(5.0, ge=0, le=60, alias="DEEPLINK_DEDUP_WINDOW")
    storage_key_prefix: str = Field(DEFAULT_STORAGE_KEY_PREFIX, alias="DEEPLINK_STORAGE_KEY_PREFIX")

    storage_backend: Literal["sqlite", "json"] = Field("sqlite", alias="STORAGE_BACKEND")
    storage_path: Path = Field(Path("./data/deeplinks.db"), alias="STORAGE_PATH")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", alias="LOG_LEVEL")

    @property
    def valid_domains(self) -> list[str]:
        return _split_tokens(self.valid_domains_raw)

    @property
    def valid_paths(self) -> list[str]:
        paths = _split_tokens(self.valid_paths_raw)
        return paths or ["/"]

    def to_link_config(self, **callbacks) -> DeepLinkConfig:
        return DeepLinkConfig(
            app_scheme=self.app_scheme,
            valid_domains=self.valid_domains,
            valid_paths=self.valid_paths,
            enable_android_recovery=self.enable_android_recovery,
            enable_ios_recovery=self.enable_ios_recovery,
            max_link_age=timedelta(hours=self.max_link_age_hours),
            attribution_timeout=timedelta(seconds=self.attribution_timeout_seconds),
            dedup_window=timedelta(seconds=self.dedup_window_seconds),
            storage_key_prefix=self.storage_key_prefix,
            enable_logging=self.log_level == "DEBUG",
            **callbacks,
        )

    def ensure_dirs(self) -> None:
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)


def _split_tokens(raw: Optional[str]) -> list[str]:
    if raw is None or raw == "":
        return []
    # Support comma/space/semicolon separation
    return [token for token in re.split(r"[\s,;]+", raw.strip()) if token]
