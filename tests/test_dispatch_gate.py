"""
Tests for duplicate suppression in front of the host callback.
"""
import asyncio
from datetime import timedelta

import pytest

from deferlink.modules.deeplinks.domain.models import ValidatedLink
from deferlink.modules.deeplinks.services.dispatch_gate import DispatchGate

from conftest import FakeClock

LINK = "testapp://content?id=1&type=a"


@pytest.fixture
def monotonic():
    return FakeClock(start=0.0)


@pytest.fixture
def gate(recorder, monotonic):
    return DispatchGate(recorder.config(), monotonic=monotonic)


class TestDispatchGate:
    """Test the single-slot dedup window."""

    def test_first_dispatch(self, gate, recorder):
        assert gate.dispatch(LINK) is True
        assert recorder.links == [LINK]
        assert gate.last_identifier == DispatchGate.identifier_for(LINK)

    def test_duplicate_within_window(self, gate, recorder, monotonic):
        gate.dispatch(LINK)
        monotonic.advance(4.9)
        assert gate.dispatch(LINK) is False
        assert recorder.links == [LINK]

    def test_duplicate_after_window(self, gate, recorder, monotonic):
        gate.dispatch(LINK)
        monotonic.advance(5.0)
        assert gate.dispatch(LINK) is True
        assert recorder.links == [LINK, LINK]

    def test_reordered_query_is_duplicate(self, gate, recorder):
        gate.dispatch(LINK)
        assert gate.dispatch("testapp://content?type=a&id=1") is False
        assert gate.dispatch("testapp://CONTENT?type=a&id=1") is False
        assert len(recorder.links) == 1

    def test_distinct_links(self, gate, recorder):
        assert gate.dispatch("testapp://content?id=1") is True
        assert gate.dispatch("testapp://content?id=2") is True
        assert gate.dispatch("testapp://content?id=1") is True
        assert len(recorder.links) == 3

    def test_validated_link(self, gate, recorder):
        assert gate.dispatch(ValidatedLink(raw=LINK, id="1", parameters={"id": "1", "type": "a"})) is True
        assert recorder.links == [LINK]

    def test_clear(self, gate, recorder):
        gate.dispatch(LINK)
        gate.clear()
        assert gate.last_identifier is None
        assert gate.dispatch(LINK) is True
        assert len(recorder.links) == 2

    def test_zero_window_disables_dedup(self, recorder, monotonic):
        gate = DispatchGate(recorder.config(dedup_window=timedelta(0)), monotonic=monotonic)
        assert gate.dispatch(LINK) is True
        assert gate.dispatch(LINK) is True
        assert gate.window == timedelta(0)

    def test_window_override(self, recorder, monotonic):
        gate = DispatchGate(recorder.config(), window=timedelta(seconds=1), monotonic=monotonic)
        gate.dispatch(LINK)
        monotonic.advance(1)
        assert gate.dispatch(LINK) is True

    def test_failing_callback(self, recorder, monotonic):
        def explode(link):
            raise RuntimeError("host crashed")

        gate = DispatchGate(recorder.config(on_deep_link=explode), monotonic=monotonic)
        assert gate.dispatch(LINK) is True
        assert any("host crashed" in error for error in recorder.errors)

    def test_without_callback(self, recorder, monotonic):
        gate = DispatchGate(recorder.config(on_deep_link=None), monotonic=monotonic)
        assert gate.dispatch(LINK) is True

    def test_identifier_of_unparsable_link(self):
        assert DispatchGate.identifier_for(" http://[broken ") == "http://[broken"


@pytest.mark.asyncio
async def test_async_callback_is_scheduled(recorder, monotonic):
    received = []

    async def on_link(link):
        received.append(link)

    gate = DispatchGate(recorder.config(on_deep_link=on_link), monotonic=monotonic)
    assert gate.dispatch(LINK) is True
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert received == [LINK]
