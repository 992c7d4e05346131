"""
Deferred and realtime deep link routing.

    from deferlink import DeepLinkConfig, DeepLinkService, InMemoryKeyValueStore

    service = DeepLinkService(
        DeepLinkConfig(app_scheme="myapp", valid_domains=["myapp.com"], on_deep_link=print),
        storage=InMemoryKeyValueStore(),
    )
    await service.initialize()
"""
from .modules.deeplinks.domain.errors import (
    DeepLinkError,
    InvalidLinkFormat,
    NativeProviderTimeout,
    NativeProviderUnavailable,
    NotInitializedError,
    StorageCorrupt,
    StorageUnavailable,
)
from .modules.deeplinks.domain.interfaces import (
    AttributionProvider,
    ClipboardReader,
    DeepLinkLogger,
    InstallReferrerClient,
    KeyValueStore,
)
from .modules.deeplinks.domain.models import (
    AttributionOutcome,
    CandidateLink,
    ClipboardContent,
    DeepLinkConfig,
    LinkSource,
    Platform,
    RecoveryState,
    ReferrerDetails,
    ValidatedLink,
)
from .modules.deeplinks.infrastructure.file_storage import JsonFileKeyValueStore
from .modules.deeplinks.infrastructure.providers import (
    ClipboardProvider,
    InstallReferrerProvider,
    StorageOnlyProvider,
    build_attribution_provider,
    detect_platform,
)
from .modules.deeplinks.infrastructure.storage import InMemoryKeyValueStore, SQLiteKeyValueStore
from .modules.deeplinks.services.deep_link_service import DeepLinkService
from .modules.deeplinks.utils.link_validator import LinkValidator

__version__ = "0.1.0"

__all__ = [
    "AttributionOutcome",
    "AttributionProvider",
    "CandidateLink",
    "ClipboardContent",
    "ClipboardProvider",
    "ClipboardReader",
    "DeepLinkConfig",
    "DeepLinkError",
    "DeepLinkLogger",
    "DeepLinkService",
    "InMemoryKeyValueStore",
    "InstallReferrerClient",
    "InstallReferrerProvider",
    "InvalidLinkFormat",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LinkSource",
    "LinkValidator",
    "NativeProviderTimeout",
    "NativeProviderUnavailable",
    "NotInitializedError",
    "Platform",
    "RecoveryState",
    "ReferrerDetails",
    "SQLiteKeyValueStore",
    "StorageCorrupt",
    "StorageOnlyProvider",
    "StorageUnavailable",
    "ValidatedLink",
    "build_attribution_provider",
    "detect_platform",
]
