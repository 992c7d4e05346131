"""
One-shot recovery of a deferred deep link after install.

Order: native provider (only inside the first-launch window), then the
expiring link store. Every candidate goes through the validator; a failure
at any step means "nothing from this source" and the chain moves on.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Optional

from ..domain.errors import DeepLinkError, InvalidLinkFormat, NativeProviderUnavailable
from ..domain.interfaces import AttributionProvider
from ..domain.models import (
    AttributionOutcome,
    CandidateLink,
    DeepLinkConfig,
    LinkReadStatus,
    LinkSource,
    Platform,
    RecoveryState,
    ValidatedLink,
)
from ..utils.link_validator import LinkValidator
from .first_launch import FirstLaunchTracker
from .link_store import ExpiringLinkStore
from ...shared.utils.async_tools import fire_and_forget
from ...shared.utils.logger import ConditionalLogger


NO_LINK_FOUND = "No deferred link found"
EXPIRED = "expired"


class AttributionRecovery:
    def __init__(
        self,
        *,
        provider: AttributionProvider,
        link_store: ExpiringLinkStore,
        first_launch: FirstLaunchTracker,
        validator: LinkValidator,
        config: DeepLinkConfig,
        platform: Platform,
        logger: Optional[ConditionalLogger] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._link_store = link_store
        self._first_launch = first_launch
        self._validator = validator
        self._config = config
        self._platform = platform
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "AttributionRecovery"
        )
        self._monotonic = monotonic
        self._lock = asyncio.Lock()
        self._state = RecoveryState.NOT_ATTEMPTED
        self._result: Optional[ValidatedLink] = None
        self._outcome: Optional[AttributionOutcome] = None

    @property
    def state(self) -> RecoveryState:
        return self._state

    @property
    def result(self) -> Optional[ValidatedLink]:
        return self._result

    @property
    def outcome(self) -> Optional[AttributionOutcome]:
        return self._outcome

    @property
    def provider(self) -> AttributionProvider:
        return self._provider

    async def recover(self) -> Optional[ValidatedLink]:
        """
        Run the fallback chain once per process.

        Later calls return the first result without querying anything.
        Never raises; the outcome is reported to ``on_attribution_data``.
        """
        async with self._lock:
            if self._state is RecoveryState.RESOLVED:
                return self._result

            self._state = RecoveryState.IN_PROGRESS
            started = self._monotonic()
            try:
                outcome, result = await self._run_chain(started)
            except Exception as exc:  # noqa: BLE001
                self._logger.error(f"Error processing deferred links: {exc}")
                fire_and_forget(self._config.on_error, f"Failed to process deferred links: {exc}")
                outcome = AttributionOutcome.failed(
                    source="error",
                    platform=self._platform.value,
                    processing_time=self._elapsed(started),
                    error=str(exc),
                )
                result = None

            self._result = result
            self._outcome = outcome
            self._state = RecoveryState.RESOLVED
            fire_and_forget(self._config.on_attribution_data, outcome.to_dict())
            return result

    async def _run_chain(self, started: float) -> tuple[AttributionOutcome, Optional[ValidatedLink]]:
        errors: list[str] = []
        tried: list[str] = []

        if self._provider.is_native:
            if await self._first_launch.is_eligible():
                tried.append(self._provider.name)
                candidate = await self._query_provider(errors)
                # The window closes after one attempt whatever it returned.
                await self._first_launch.mark_completed()
                if candidate is not None:
                    validated = self._accept(candidate, errors)
                    if validated is not None:
                        return self._succeeded(candidate, validated, started), validated
            else:
                self._logger.info(f"Outside first-launch window, skipping {self._provider.name}")

        tried.append(LinkSource.STORAGE.value)
        read = await self._link_store.read_with_status()

        if read.status is LinkReadStatus.FOUND and read.link is not None:
            await self._link_store.clear()
            candidate = CandidateLink(raw=read.link, source=LinkSource.STORAGE)
            validated = self._accept(candidate, errors)
            if validated is not None:
                await self._first_launch.mark_completed()
                return self._succeeded(candidate, validated, started), validated

        if read.status is LinkReadStatus.EXPIRED:
            self._logger.info("Stored deferred link had expired")
            return (
                AttributionOutcome.failed(
                    source=LinkSource.STORAGE.value,
                    platform=self._platform.value,
                    processing_time=self._elapsed(started),
                    error=EXPIRED,
                    metadata={"expired": True, "sources_tried": tried, "errors": errors},
                ),
                None,
            )

        self._logger.info("No deferred deep link found from any source")
        return (
            AttributionOutcome.failed(
                source=LinkSource.NONE.value,
                platform=self._platform.value,
                processing_time=self._elapsed(started),
                error=NO_LINK_FOUND,
                metadata={"sources_tried": tried, "errors": errors},
            ),
            None,
        )

    async def _query_provider(self, errors: list[str]) -> Optional[CandidateLink]:
        try:
            return await self._provider.fetch_candidate()
        except Exception as exc:  # noqa: BLE001
            if not isinstance(exc, DeepLinkError):
                exc = NativeProviderUnavailable(str(exc))
            message = f"{self._provider.name} failed: {exc}"
            self._logger.warning(message)
            errors.append(message)
            fire_and_forget(self._config.on_error, message)
            return None

    def _accept(self, candidate: CandidateLink, errors: list[str]) -> Optional[ValidatedLink]:
        validated = self._validator.validate(candidate.raw)
        if validated is None:
            error = InvalidLinkFormat(f"Invalid deferred link format from {candidate.source.value}: {candidate.raw}")
            self._logger.warning(str(error))
            errors.append(str(error))
            fire_and_forget(self._config.on_error, str(error))
        return validated

    def _succeeded(
        self, candidate: CandidateLink, validated: ValidatedLink, started: float
    ) -> AttributionOutcome:
        self._logger.info(f"Recovered deferred link from {candidate.source.value}")
        metadata: dict[str, Any] = {
            "link_id": validated.id,
            "parameters": dict(validated.parameters),
            **candidate.metadata,
        }
        return AttributionOutcome.succeeded(
            link=validated.raw,
            source=candidate.source.value,
            platform=self._platform.value,
            processing_time=self._elapsed(started),
            metadata=metadata,
        )

    def _elapsed(self, started: float) -> timedelta:
        return timedelta(seconds=max(0.0, self._monotonic() - started))
