from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from deferlink.modules.deeplinks.domain.interfaces import AttributionProvider
from deferlink.modules.deeplinks.domain.models import CandidateLink, DeepLinkConfig, LinkSource


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Recorder:
    links: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    outcomes: list[dict[str, Any]] = field(default_factory=list)

    def config(self, **overrides: Any) -> DeepLinkConfig:
        values: dict[str, Any] = {
            "app_scheme": "testapp",
            "valid_domains": ["test.com"],
            "valid_paths": ["/app/", "/content/"],
            "on_deep_link": self.links.append,
            "on_error": self.errors.append,
            "on_attribution_data": self.outcomes.append,
        }
        values.update(overrides)
        return DeepLinkConfig(**values)


class StaticProvider(AttributionProvider):
    """Native provider returning a fixed link, or raising a fixed error."""

    name = LinkSource.INSTALL_REFERRER.value

    def __init__(self, link: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.link = link
        self.error = error
        self.calls = 0

    async def fetch_candidate(self) -> Optional[CandidateLink]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.link is None:
            return None
        return CandidateLink(raw=self.link, source=LinkSource.INSTALL_REFERRER)


class FailingStore:
    def get(self, key: str) -> Optional[str]:
        raise OSError("disk unavailable")

    def set(self, key: str, value: str) -> None:
        raise OSError("disk unavailable")

    def delete(self, key: str) -> None:
        raise OSError("disk unavailable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
