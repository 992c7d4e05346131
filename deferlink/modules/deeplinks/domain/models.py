"""
Domain models for deferred and realtime deep links.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

from .interfaces import DeepLinkLogger


DEFAULT_STORAGE_KEY_PREFIX = "deferlink_"


class Platform(str, Enum):
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"
    OTHER = "other"


class LinkSource(str, Enum):
    INSTALL_REFERRER = "install_referrer"
    CLIPBOARD = "clipboard"
    STORAGE = "storage"
    REALTIME = "realtime"
    NONE = "none"


class RecoveryState(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class LinkReadStatus(str, Enum):
    FOUND = "found"
    MISSING = "missing"
    EXPIRED = "expired"
    CORRUPT = "corrupt"
    ERROR = "error"


@dataclass(frozen=True)
class DeepLinkConfig:
    """
    Immutable configuration shared by every deep link component.

    Only ``app_scheme`` and ``valid_domains`` are required. Lists are
    normalised to tuples.
    """

    app_scheme: str
    valid_domains: Sequence[str]
    valid_paths: Sequence[str] = ("/",)
    enable_android_recovery: bool = True
    enable_ios_recovery: bool = False
    max_link_age: timedelta = timedelta(days=7)
    attribution_timeout: timedelta = timedelta(seconds=10)
    clipboard_timeout: timedelta = timedelta(seconds=3)
    dedup_window: timedelta = timedelta(seconds=5)
    storage_key_prefix: str = DEFAULT_STORAGE_KEY_PREFIX
    enable_logging: bool = False
    logger: Optional[DeepLinkLogger] = field(default=None, compare=False)
    on_deep_link: Optional[Callable[[str], Any]] = field(default=None, compare=False)
    on_error: Optional[Callable[[str], Any]] = field(default=None, compare=False)
    on_attribution_data: Optional[Callable[[dict[str, Any]], Any]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "valid_domains", tuple(self.valid_domains))
        object.__setattr__(self, "valid_paths", tuple(self.valid_paths))
        if not self.app_scheme or not self.app_scheme.strip():
            raise ValueError("app_scheme is required and cannot be empty")
        if not self.valid_paths:
            raise ValueError("valid_paths must contain at least one path")
        if self.max_link_age <= timedelta(0):
            raise ValueError("max_link_age must be positive")
        if self.attribution_timeout <= timedelta(0):
            raise ValueError("attribution_timeout must be positive")
        if self.clipboard_timeout <= timedelta(0):
            raise ValueError("clipboard_timeout must be positive")
        if self.dedup_window < timedelta(0):
            raise ValueError("dedup_window cannot be negative")

    def replace(self, **changes: Any) -> "DeepLinkConfig":
        return dataclasses.replace(self, **changes)

    def summary(self) -> dict[str, Any]:
        return {
            "app_scheme": self.app_scheme,
            "valid_domains": list(self.valid_domains),
            "valid_paths": list(self.valid_paths),
            "enable_android_recovery": self.enable_android_recovery,
            "enable_ios_recovery": self.enable_ios_recovery,
            "max_link_age_hours": int(self.max_link_age.total_seconds() // 3600),
            "attribution_timeout_seconds": self.attribution_timeout.total_seconds(),
            "dedup_window_seconds": self.dedup_window.total_seconds(),
            "storage_key_prefix": self.storage_key_prefix,
            "enable_logging": self.enable_logging,
        }


@dataclass(frozen=True)
class CandidateLink:
    raw: str
    source: LinkSource
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidatedLink:
    raw: str
    id: Optional[str]
    parameters: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ReferrerDetails:
    """Result of a native install-referrer query."""

    referrer_payload: Optional[str] = None
    click_timestamp_seconds: Optional[int] = None
    install_begin_timestamp_seconds: Optional[int] = None
    google_play_instant: Optional[bool] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def as_metadata(self) -> dict[str, Any]:
        return {
            "click_timestamp_seconds": self.click_timestamp_seconds,
            "install_begin_timestamp_seconds": self.install_begin_timestamp_seconds,
            "google_play_instant": self.google_play_instant,
        }


@dataclass(frozen=True)
class ClipboardContent:
    clipboard_text: Optional[str] = None


@dataclass(frozen=True)
class AttributionOutcome:
    success: bool
    source: str
    platform: str
    processing_time: timedelta
    link: Optional[str] = None
    error: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        *,
        link: str,
        source: str,
        platform: str,
        processing_time: timedelta,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "AttributionOutcome":
        return cls(
            success=True,
            link=link,
            source=source,
            platform=platform,
            processing_time=processing_time,
            metadata=dict(metadata or {}),
        )

    @classmethod
    def failed(
        cls,
        *,
        source: str,
        platform: str,
        processing_time: timedelta,
        error: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "AttributionOutcome":
        return cls(
            success=False,
            source=source,
            platform=platform,
            processing_time=processing_time,
            error=error,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "link": self.link,
            "source": self.source,
            "platform": self.platform,
            "processing_time_ms": int(self.processing_time.total_seconds() * 1000),
            "error": self.error,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class StoredLinkRead:
    status: LinkReadStatus
    link: Optional[str] = None


@dataclass(frozen=True)
class StoredLinkMetadata:
    link_preview: str
    stored_at_ms: int
    age_hours: int
    is_expired: bool
    storage_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "link_preview": self.link_preview,
            "stored_at_ms": self.stored_at_ms,
            "age_hours": self.age_hours,
            "is_expired": self.is_expired,
            "storage_key": self.storage_key,
        }
