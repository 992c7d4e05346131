from __future__ import annotations

import logging
from typing import Optional

from ...deeplinks.domain.interfaces import DeepLinkLogger


DEFAULT_LOGGER_NAME = "deferlink"


class ConditionalLogger:
    """
    Logger used by the deep link services.

    Writes nothing unless ``enabled``. Messages go to the supplied logger, or
    to the ``deferlink`` stdlib logger when none is given or when the
    supplied one raises.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        external: Optional[DeepLinkLogger] = None,
        prefix: str = "",
    ) -> None:
        self._enabled = enabled
        self._external = external
        self._prefix = prefix
        self._fallback = logging.getLogger(DEFAULT_LOGGER_NAME)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def child(self, prefix: str) -> "ConditionalLogger":
        return ConditionalLogger(enabled=self._enabled, external=self._external, prefix=prefix)

    def debug(self, message: str) -> None:
        self._emit(logging.DEBUG, "debug", message)

    def info(self, message: str) -> None:
        self._emit(logging.INFO, "info", message)

    def warning(self, message: str) -> None:
        self._emit(logging.WARNING, "warning", message)

    def error(self, message: str) -> None:
        self._emit(logging.ERROR, "error", message)

    def _emit(self, level: int, method: str, message: str) -> None:
        if not self._enabled:
            return
        text = f"{self._prefix}: {message}" if self._prefix else message
        if self._external is not None:
            try:
                getattr(self._external, method)(text)
                return
            except Exception:  # noqa: BLE001
                self._fallback.debug("external logger failed", exc_info=True)
        self._fallback.log(level, text)
