from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

from ..domain.models import DeepLinkConfig, ValidatedLink
from ...shared.utils.async_tools import fire_and_forget, schedule_awaitable
from ...shared.utils.logger import ConditionalLogger


@dataclass
class _RecentLink:
    identifier: str
    expires_at: float


class DispatchGate:
    """
    Last step before the host's ``on_deep_link`` callback.

    Remembers the most recently dispatched link for ``dedup_window`` and
    drops an identical link arriving inside that window. Links are compared
    structurally, so reordered query parameters count as the same link.
    """

    def __init__(
        self,
        config: DeepLinkConfig,
        *,
        window: Optional[timedelta] = None,
        monotonic: Callable[[], float] = time.monotonic,
        logger: Optional[ConditionalLogger] = None,
    ) -> None:
        self._config = config
        self._window = (window if window is not None else config.dedup_window).total_seconds()
        self._monotonic = monotonic
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "DispatchGate"
        )
        self._recent: Optional[_RecentLink] = None

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self._window)

    @property
    def last_identifier(self) -> Optional[str]:
        recent = self._current()
        return recent.identifier if recent else None

    @staticmethod
    def identifier_for(link: str) -> str:
        try:
            parts = urlsplit(link.strip())
        except ValueError:
            return link.strip()
        query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
        return f"{parts.scheme}://{parts.netloc.lower()}{parts.path}?{query}"

    def dispatch(self, link: Union[str, ValidatedLink]) -> bool:
        """
        Forward ``link`` to the host callback unless it is a recent duplicate.

        Returns:
            True if the callback was invoked
        """
        raw = link.raw if isinstance(link, ValidatedLink) else link
        identifier = self.identifier_for(raw)

        recent = self._current()
        if recent is not None and recent.identifier == identifier:
            self._logger.debug(f"Skipping duplicate link: {identifier}")
            return False

        self._recent = _RecentLink(identifier=identifier, expires_at=self._monotonic() + self._window)

        callback = self._config.on_deep_link
        if callback is None:
            self._logger.warning("No on_deep_link callback configured")
            return True
        try:
            result = callback(raw)
        except Exception as exc:  # noqa: BLE001
            message = f"Deep link callback failed for {raw}: {exc}"
            self._logger.error(message)
            fire_and_forget(self._config.on_error, message)
            return True
        if inspect.isawaitable(result):
            schedule_awaitable(result)
        self._logger.info(f"Dispatched deep link: {raw}")
        return True

    def clear(self) -> None:
        self._recent = None
        self._logger.debug("Cleared last dispatched link")

    def _current(self) -> Optional[_RecentLink]:
        if self._recent is not None and self._monotonic() >= self._recent.expires_at:
            self._recent = None
        return self._recent
