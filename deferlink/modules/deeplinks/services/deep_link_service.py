"""
Single entry point composing deferred link recovery and realtime dispatch.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterable, Callable
from typing import Any, Optional

from ..domain.errors import InvalidLinkFormat, NotInitializedError
from ..domain.interfaces import AttributionProvider, ClipboardReader, InstallReferrerClient, KeyValueStore
from ..domain.models import DeepLinkConfig, Platform, RecoveryState
from ..infrastructure.providers import build_attribution_provider, detect_platform
from ..utils.link_validator import LinkValidator
from .dispatch_gate import DispatchGate
from .first_launch import FirstLaunchTracker
from .link_store import ExpiringLinkStore
from .recovery import AttributionRecovery
from ...shared.utils.async_tools import fire_and_forget
from ...shared.utils.logger import ConditionalLogger


class DeepLinkService:
    """
    Routes every deep link, deferred or realtime, to ``config.on_deep_link``.

    ``initialize()`` runs deferred link recovery once, dispatches what it
    finds, and only then subscribes to the realtime link stream, so a
    recovered link is always delivered before any realtime one.

    Example:
        service = DeepLinkService(config, storage=store, link_stream=source)
        await service.initialize()
        ...
        await service.dispose()
    """

    def __init__(
        self,
        config: DeepLinkConfig,
        *,
        storage: KeyValueStore,
        link_stream: Optional[AsyncIterable[str]] = None,
        platform: Optional[Platform] = None,
        provider: Optional[AttributionProvider] = None,
        referrer_client: Optional[InstallReferrerClient] = None,
        clipboard_reader: Optional[ClipboardReader] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._platform = platform or detect_platform()
        base_logger = ConditionalLogger(enabled=config.enable_logging, external=config.logger)
        self._logger = base_logger.child("DeepLinkService")

        self._validator = LinkValidator(config, base_logger)
        self._link_store = ExpiringLinkStore(storage, config, clock=clock, logger=base_logger)
        self._first_launch = FirstLaunchTracker(storage, config, clock=clock, logger=base_logger)
        if provider is None:
            provider = build_attribution_provider(
                self._platform,
                config,
                referrer_client=referrer_client,
                clipboard_reader=clipboard_reader,
                logger=base_logger,
            )
        self._recovery = AttributionRecovery(
            provider=provider,
            link_store=self._link_store,
            first_launch=self._first_launch,
            validator=self._validator,
            config=config,
            platform=self._platform,
            logger=base_logger,
            monotonic=monotonic,
        )
        self._gate = DispatchGate(config, monotonic=monotonic, logger=base_logger)
        self._link_stream = link_stream
        self._subscription: Optional[asyncio.Task] = None
        self._initialized = False
        self._lock = asyncio.Lock()

        self._logger.info(f"Created for platform {self._platform.value} with provider {provider.name}")

    async def __aenter__(self) -> "DeepLinkService":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    @property
    def config(self) -> DeepLinkConfig:
        return self._config

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def recovery_state(self) -> RecoveryState:
        return self._recovery.state

    async def initialize(self) -> bool:
        """
        Wire up deep link handling.

        Returns:
            True if this call did the work, False if already initialized
        """
        async with self._lock:
            if self._initialized:
                self._logger.debug("Already initialized")
                return False

            if self._platform is Platform.WEB:
                self._logger.info("Web platform: deferred recovery not applicable, realtime links only")
            elif self._recovery.state is RecoveryState.NOT_ATTEMPTED:
                await self._first_launch.ensure_install_timestamp()
                recovered = await self._recovery.recover()
                if recovered is not None:
                    self._gate.dispatch(recovered)

            self._subscribe()
            self._initialized = True
            self._logger.info("Initialization complete")
            return True

    async def dispose(self) -> None:
        """Cancel the realtime subscription; waits for a running initialize()."""
        async with self._lock:
            task, self._subscription = self._subscription, None
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._initialized = False
            self._logger.debug("Disposed")

    def handle_link(self, link: Any) -> bool:
        """
        Validate a realtime link and pass it through the dispatch gate.

        Returns:
            True if the host callback was invoked
        """
        try:
            raw = str(link)
            validated = self._validator.validate(raw)
            if validated is None:
                self._report(InvalidLinkFormat(f"Invalid normal deep link format: {raw}"))
                return False
            return self._gate.dispatch(validated)
        except Exception as exc:  # noqa: BLE001
            self._report(exc, prefix="Failed to handle normal deep link")
            return False

    def is_valid_deep_link(self, link: str) -> bool:
        return self._validator.is_valid_deep_link(link)

    def extract_link_id(self, link: str) -> Optional[str]:
        return self._validator.extract_id(link)

    def extract_link_parameters(self, link: str) -> dict[str, str]:
        return self._validator.extract_parameters(link)

    async def store_deferred_link(self, link: str) -> bool:
        """Store a link for recovery on a later launch; invalid links are rejected."""
        self._require_initialized("store_deferred_link")
        validated = self._validator.validate(link)
        if validated is None:
            self._report(InvalidLinkFormat(f"Cannot store invalid deep link: {link}"))
            return False
        return await self._link_store.store(validated.raw)

    async def get_stored_deferred_link(self) -> Optional[str]:
        self._require_initialized("get_stored_deferred_link")
        return await self._link_store.read()

    async def clear_stored_deferred_link(self) -> None:
        self._require_initialized("clear_stored_deferred_link")
        await self._link_store.clear()

    async def get_stored_link_metadata(self) -> Optional[dict[str, Any]]:
        self._require_initialized("get_stored_link_metadata")
        metadata = await self._link_store.metadata()
        return metadata.to_dict() if metadata else None

    async def get_attribution_metadata(self) -> dict[str, Any]:
        self._require_initialized("get_attribution_metadata")
        outcome = self._recovery.outcome
        return {
            "is_initialized": self._initialized,
            "platform": self._platform.value,
            "provider": self._recovery.provider.name,
            "recovery_state": self._recovery.state.value,
            "last_outcome": outcome.to_dict() if outcome else None,
            "config": self._config.summary(),
            "first_launch": await self._first_launch.metadata(),
            "storage": await self.get_stored_link_metadata(),
            "last_dispatched": self._gate.last_identifier,
            "realtime_subscribed": self._subscription is not None and not self._subscription.done(),
        }

    async def reset_first_launch_flag(self) -> None:
        self._require_initialized("reset_first_launch_flag")
        await self._first_launch.reset()

    async def cleanup_expired_links(self) -> bool:
        self._require_initialized("cleanup_expired_links")
        return await self._link_store.cleanup_expired()

    async def force_expire_stored_link(self) -> bool:
        self._require_initialized("force_expire_stored_link")
        return await self._link_store.force_expire()

    def clear_dedup_cache(self) -> None:
        self._gate.clear()

    def _subscribe(self) -> None:
        if self._link_stream is None:
            self._logger.debug("No realtime link stream configured")
            return
        self._subscription = asyncio.create_task(self._consume(self._link_stream))

    async def _consume(self, stream: AsyncIterable[str]) -> None:
        try:
            async for link in stream:
                self._logger.debug(f"Received realtime link: {link}")
                self.handle_link(link)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._report(exc, prefix="Realtime link stream failed")
        self._logger.debug("Realtime link stream ended")

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedError(operation)

    def _report(self, error: Exception, *, prefix: Optional[str] = None) -> None:
        message = f"{prefix}: {error}" if prefix else str(error)
        self._logger.error(message)
        fire_and_forget(self._config.on_error, message)
