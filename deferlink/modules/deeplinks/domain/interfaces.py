"""
Collaborator interfaces for the deep link module.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Optional, Protocol, Union

if TYPE_CHECKING:
    from .models import CandidateLink, ClipboardContent, ReferrerDetails


class DeepLinkLogger(Protocol):
    """Four-level logging capability. ``logging.Logger`` satisfies it."""

    def debug(self, msg: str) -> object: ...

    def info(self, msg: str) -> object: ...

    def warning(self, msg: str) -> object: ...

    def error(self, msg: str) -> object: ...


class KeyValueStore(Protocol):
    """
    Durable string storage.

    Methods may be plain or coroutine functions; callers await the result
    only when it is awaitable.
    """

    def get(self, key: str) -> Union[Optional[str], Awaitable[Optional[str]]]:
        """Return the stored value or None."""

    def set(self, key: str, value: str) -> Union[None, Awaitable[None]]:
        """Store value under key, replacing any previous value."""

    def delete(self, key: str) -> Union[None, Awaitable[None]]:
        """Remove key if present."""


class InstallReferrerClient(Protocol):
    async def fetch_referrer(self) -> Optional[ReferrerDetails]:
        """Query the app-store install referrer service."""


class ClipboardReader(Protocol):
    async def read_clipboard(self) -> Optional[ClipboardContent]:
        """Read plain text from the system clipboard."""


class AttributionProvider(ABC):
    """Platform-specific native source of a deferred link candidate."""

    name: str = "none"

    @abstractmethod
    async def fetch_candidate(self) -> Optional[CandidateLink]:
        """
        Query the native source once.

        Returns:
            Candidate link, or None if the source had nothing

        Raises:
            NativeProviderUnavailable: the native source failed
            NativeProviderTimeout: the native source did not answer in time
        """

    @property
    def is_native(self) -> bool:
        return True
