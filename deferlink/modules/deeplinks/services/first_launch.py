from __future__ import annotations

import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Optional

from ..domain.errors import StorageCorrupt, StorageUnavailable
from ..domain.interfaces import KeyValueStore
from ..domain.models import DeepLinkConfig
from ...shared.utils.async_tools import fire_and_forget, maybe_await
from ...shared.utils.logger import ConditionalLogger


COMPLETED_VALUE = "true"
MS_PER_HOUR = 3_600_000


class FirstLaunchTracker:
    """
    Persistent first-launch marker bounding native attribution queries.

    A launch is eligible iff the completed flag is unset and no more than
    ``max_link_age`` has passed since the recorded install time.
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
            "FirstLaunchTracker"
        )
        self._completed_key = f"{config.storage_key_prefix}first_launch_completed"
        self._install_key = f"{config.storage_key_prefix}install_timestamp"
        self._max_age_ms = int(config.max_link_age / timedelta(milliseconds=1))

    async def ensure_install_timestamp(self) -> Optional[int]:
        """Record the install time on the very first start; return the stored value."""
        try:
            raw = await maybe_await(self._storage.get(self._install_key))
            if raw is None:
                now = self._now_ms()
                await maybe_await(self._storage.set(self._install_key, str(now)))
                self._logger.info(f"Recorded install timestamp {now}")
                return now
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to initialize first launch tracking: {exc}"))
            return None
        try:
            return _parse_int(raw)
        except StorageCorrupt as exc:
            self._report(exc)
            return None

    async def is_eligible(self) -> bool:
        try:
            completed = await maybe_await(self._storage.get(self._completed_key))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to read first launch flag: {exc}"))
            return False
        if completed == COMPLETED_VALUE:
            self._logger.debug("First launch already completed")
            return False

        install_ms = await self.ensure_install_timestamp()
        if install_ms is None:
            return False

        elapsed_ms = self._now_ms() - install_ms
        if elapsed_ms > self._max_age_ms:
            self._logger.info(f"Too long since install ({elapsed_ms // MS_PER_HOUR}h), closing first-launch window")
            await self.mark_completed()
            return False

        self._logger.debug("Within first-launch window")
        return True

    async def mark_completed(self) -> None:
        try:
            await maybe_await(self._storage.set(self._completed_key, COMPLETED_VALUE))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to mark first launch completed: {exc}"))
            return
        self._logger.debug("Marked first launch completed")

    async def reset(self) -> None:
        """Clear the completed flag so attribution can run again. Testing hook."""
        try:
            await maybe_await(self._storage.delete(self._completed_key))
        except Exception as exc:  # noqa: BLE001
            self._report(StorageUnavailable(f"Failed to reset first launch flag: {exc}"))
            return
        self._logger.info("Reset first launch flag")

    async def metadata(self) -> dict[str, Any]:
        try:
            completed = await maybe_await(self._storage.get(self._completed_key))
            raw_install = await maybe_await(self._storage.get(self._install_key))
        except Exception as exc:  # noqa: BLE001
            return {"error": str(exc)}
        try:
            install_ms = _parse_int(raw_install) if raw_install is not None else None
        except StorageCorrupt as exc:
            return {"error": str(exc)}
        hours = (self._now_ms() - install_ms) // MS_PER_HOUR if install_ms is not None else None
        first_launch_completed = completed == COMPLETED_VALUE
        return {
            "install_timestamp_ms": install_ms,
            "first_launch_completed": first_launch_completed,
            "time_since_install_hours": hours,
            "is_eligible": (
                not first_launch_completed
                and install_ms is not None
                and self._now_ms() - install_ms <= self._max_age_ms
            ),
        }

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _report(self, error: Exception) -> None:
        self._logger.error(str(error))
        fire_and_forget(self._config.on_error, str(error))


def _parse_int(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise StorageCorrupt(f"Install timestamp is unreadable: {raw!r}") from exc
