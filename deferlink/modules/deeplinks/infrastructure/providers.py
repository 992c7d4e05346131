"""
Platform variants of the native attribution source.

The platform is resolved once at startup; recovery only ever sees an
``AttributionProvider``.
"""
from __future__ import annotations

import asyncio
import sys
from typing import Optional
from urllib.parse import parse_qs, unquote

from ..domain.errors import NativeProviderTimeout, NativeProviderUnavailable
from ..domain.interfaces import AttributionProvider, ClipboardReader, InstallReferrerClient
from ..domain.models import CandidateLink, DeepLinkConfig, LinkSource, Platform
from ...shared.utils.logger import ConditionalLogger


DEFERRED_CAMPAIGN_MARKER = "deferred_link"


def detect_platform() -> Platform:
    if sys.platform in ("emscripten", "wasi"):
        return Platform.WEB
    if sys.platform == "android" or hasattr(sys, "getandroidapilevel"):
        return Platform.ANDROID
    if sys.platform in ("ios", "ipados"):
        return Platform.IOS
    return Platform.OTHER


def extract_link_from_referrer(payload: str) -> Optional[str]:
    """
    Pull the deferred link out of an install-referrer payload.

    The payload is a query string (``utm_source=...&utm_content=<link>``);
    the link travels URL-encoded inside ``utm_content``.
    """
    params = parse_qs(payload.lstrip("?"), keep_blank_values=False)
    values = params.get("utm_content")
    if not values or not values[0]:
        return None
    return unquote(values[0])


class InstallReferrerProvider(AttributionProvider):
    name = LinkSource.INSTALL_REFERRER.value

    def __init__(
        self,
        client: InstallReferrerClient,
        config: DeepLinkConfig,
        logger: Optional[ConditionalLogger] = None,
    ) -> None:
        self._client = client
        self._timeout = config.attribution_timeout.total_seconds()
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "InstallReferrerProvider"
        )

    async def fetch_candidate(self) -> Optional[CandidateLink]:
        self._logger.debug("Querying install referrer")
        try:
            details = await asyncio.wait_for(self._client.fetch_referrer(), timeout=self._timeout)
        except TimeoutError as exc:
            raise NativeProviderTimeout(f"Install referrer timed out after {self._timeout:g}s") from exc
        except Exception as exc:  # noqa: BLE001
            raise NativeProviderUnavailable(f"Install referrer query failed: {exc}") from exc

        if details is None:
            self._logger.debug("No install referrer data available")
            return None
        if details.is_error:
            raise NativeProviderUnavailable(
                f"Install referrer unavailable ({details.error_code}): {details.error_message or 'no details'}"
            )
        if not details.referrer_payload:
            self._logger.debug("Install referrer payload is empty")
            return None

        link = extract_link_from_referrer(details.referrer_payload)
        if link is None:
            campaign = parse_qs(details.referrer_payload).get("utm_campaign", [""])[0]
            if DEFERRED_CAMPAIGN_MARKER in campaign:
                self._logger.warning("Deferred link marker in utm_campaign but no utm_content link")
            else:
                self._logger.debug("Install referrer carries no utm_content link")
            return None
        return CandidateLink(raw=link, source=LinkSource.INSTALL_REFERRER, metadata=details.as_metadata())


class ClipboardProvider(AttributionProvider):
    name = LinkSource.CLIPBOARD.value

    def __init__(
        self,
        reader: ClipboardReader,
        config: DeepLinkConfig,
        logger: Optional[ConditionalLogger] = None,
    ) -> None:
        self._reader = reader
        self._config = config
        self._timeout = config.clipboard_timeout.total_seconds()
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "ClipboardProvider"
        )

    async def fetch_candidate(self) -> Optional[CandidateLink]:
        self._logger.debug("Checking clipboard for deferred links")
        try:
            content = await asyncio.wait_for(self._reader.read_clipboard(), timeout=self._timeout)
        except TimeoutError as exc:
            raise NativeProviderTimeout(f"Clipboard read timed out after {self._timeout:g}s") from exc
        except Exception as exc:  # noqa: BLE001
            raise NativeProviderUnavailable(f"Clipboard read failed: {exc}") from exc

        text = (content.clipboard_text or "").strip() if content else ""
        if not text:
            return None

        matched = self._match_origin(text)
        if matched is None:
            self._logger.debug("Clipboard text does not reference this app")
            return None
        return CandidateLink(raw=text, source=LinkSource.CLIPBOARD, metadata={"matched_domain": matched})

    def _match_origin(self, text: str) -> Optional[str]:
        lowered = text.lower()
        if f"{self._config.app_scheme.lower()}://" in lowered:
            return self._config.app_scheme
        for domain in self._config.valid_domains:
            if domain.lower() in lowered:
                return domain
        return None


class StorageOnlyProvider(AttributionProvider):
    """No native source: recovery relies on the expiring link store alone."""

    name = LinkSource.NONE.value

    async def fetch_candidate(self) -> Optional[CandidateLink]:
        return None

    @property
    def is_native(self) -> bool:
        return False


def build_attribution_provider(
    platform: Platform,
    config: DeepLinkConfig,
    *,
    referrer_client: Optional[InstallReferrerClient] = None,
    clipboard_reader: Optional[ClipboardReader] = None,
    logger: Optional[ConditionalLogger] = None,
) -> AttributionProvider:
    log = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child("providers")
    if platform is Platform.ANDROID and config.enable_android_recovery:
        if referrer_client is not None:
            return InstallReferrerProvider(referrer_client, config, logger)
        log.warning("Android recovery enabled but no install referrer client supplied")
    elif platform is Platform.IOS and config.enable_ios_recovery:
        if clipboard_reader is not None:
            return ClipboardProvider(clipboard_reader, config, logger)
        log.warning("iOS recovery enabled but no clipboard reader supplied")
    return StorageOnlyProvider()
