"""
Single-slot persistent store for the pending deferred deep link.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Optional

from ..domain.errors import StorageCorrupt, StorageUnavailable
from ..domain.interfaces import KeyValueStore
from ..domain.models import DeepLinkConfig, LinkReadStatus, StoredLinkMetadata, StoredLinkRead
from ...shared.utils.async_tools import fire_and_forget, maybe_await
from ...shared.utils.logger import ConditionalLogger


PREVIEW_LENGTH = 50
MS_PER_HOUR = 3_600_000


class ExpiringLinkStore:
    """
    Holds at most one pending link plus the time it was stored.

    Expiry is lazy: an expired record is deleted the next time it is read.
    Storage failures never propagate; they are reported through
    ``config.on_error`` and the call degrades to "no link".
    """

    def __init__(
        self,
        storage: KeyValueStore,
        config: DeepLinkConfig,
        *,
        clock: Callable[[], float] = time.time,
        logger: Optional[ConditionalLogger] = None,
    ) -> None:
        self._storage = storage
        self._config = config
        self._clock = clock
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "ExpiringLinkStore"
        )
        self._link_key = f"{config.storage_key_prefix}deferred_link"
        self._timestamp_key = f"{config.storage_key_prefix}deferred_link_timestamp"
        self._max_age_ms = int(config.max_link_age / timedelta(milliseconds=1))

    @property
    def link_key(self) -> str:
        return self._link_key

    @property
    def timestamp_key(self) -> str:
        return self._timestamp_key

    async def store(self, link: str) -> bool:
        """Overwrite the pending record with ``link`` stamped with the current time."""
        try:
            await maybe_await(self._storage.set(self._link_key, link))
            await maybe_await(self._storage.set(self._timestamp_key, str(self._now_ms())))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to store deferred link: {exc}"))
            return False
        self._logger.info(f"Stored deferred link: {_preview(link)}")
        return True

    async def read(self) -> Optional[str]:
        result = await self.read_with_status()
        return result.link if result.status is LinkReadStatus.FOUND else None

    async def read_with_status(self) -> StoredLinkRead:
        try:
            link = await maybe_await(self._storage.get(self._link_key))
            raw_timestamp = await maybe_await(self._storage.get(self._timestamp_key))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to get stored deferred link: {exc}"))
            return StoredLinkRead(LinkReadStatus.ERROR)

        if link is None:
            self._logger.debug("No stored link found")
            return StoredLinkRead(LinkReadStatus.MISSING)

        try:
            stored_at = _parse_timestamp(raw_timestamp)
        except StorageCorrupt as exc:
            self._report(exc)
            await self.clear()
            return StoredLinkRead(LinkReadStatus.CORRUPT)

        age_ms = self._now_ms() - stored_at
        if age_ms > self._max_age_ms:
            self._logger.info(f"Deferred link expired ({age_ms // MS_PER_HOUR}h old), removing")
            await self.clear()
            return StoredLinkRead(LinkReadStatus.EXPIRED, link)

        self._logger.info(f"Retrieved deferred link: {_preview(link)} ({age_ms // MS_PER_HOUR}h old)")
        return StoredLinkRead(LinkReadStatus.FOUND, link)

    async def clear(self) -> None:
        try:
            await maybe_await(self._storage.delete(self._link_key))
            await maybe_await(self._storage.delete(self._timestamp_key))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to clear stored deferred link: {exc}"))
            return
        self._logger.debug("Cleared stored deferred link")

    async def metadata(self) -> Optional[StoredLinkMetadata]:
        """Describe the pending record without touching it."""
        try:
            link = await maybe_await(self._storage.get(self._link_key))
            raw_timestamp = await maybe_await(self._storage.get(self._timestamp_key))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to read deferred link metadata: {exc}"))
            return None
        if link is None:
            return None
        try:
            stored_at = _parse_timestamp(raw_timestamp)
        except StorageCorrupt as exc:
            self._report(exc)
            return None
        age_ms = self._now_ms() - stored_at
        return StoredLinkMetadata(
            link_preview=_preview(link),
            stored_at_ms=stored_at,
            age_hours=age_ms // MS_PER_HOUR,
            is_expired=age_ms > self._max_age_ms,
            storage_key=self._link_key,
        )

    async def cleanup_expired(self) -> bool:
        metadata = await self.metadata()
        if metadata is None or not metadata.is_expired:
            return False
        await self.clear()
        self._logger.info("Cleaned up expired link")
        return True

    async def force_expire(self) -> bool:
        """Back-date the pending record past ``max_link_age``. Testing hook."""
        try:
            link = await maybe_await(self._storage.get(self._link_key))
            if link is None:
                return False
            expired_at = self._now_ms() - self._max_age_ms - 1
            await maybe_await(self._storage.set(self._timestamp_key, str(expired_at)))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to expire stored deferred link: {exc}"))
            return False
        return True

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _report(self, error: Exception) -> None:
        self._logger.error(str(error))
        fire_and_forget(self._config.on_error, str(error))


def _parse_timestamp(raw: Optional[str]) -> int:
    if raw is None:
        raise StorageCorrupt("Stored deferred link has no timestamp")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise StorageCorrupt(f"Stored deferred link timestamp is unreadable: {raw!r}") from exc


def _preview(link: str) -> str:
    if len(link) <= PREVIEW_LENGTH:
        return link
    return f"{link[:PREVIEW_LENGTH]}..."
