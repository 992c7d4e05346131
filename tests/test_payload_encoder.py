"""
Tests for Telegram start payload encoding and message link extraction.
"""
import asyncio
from datetime import datetime

import pytest
from aiogram.types import Chat, Message, MessageEntity

from deferlink.modules.deeplinks.handlers.start_handler import DeepLinkMiddleware
from deferlink.modules.deeplinks.infrastructure.telegram_links import (
    TelegramLinkSource,
    extract_message_links,
    start_payload,
)
from deferlink.modules.deeplinks.utils.payload_encoder import (
    decode_link_payload,
    encode_link_payload,
    generate_start_link,
)


def make_message(text=None, entities=None, caption=None, caption_entities=None) -> Message:
    return Message(
        message_id=1,
        date=datetime(2024, 1, 1),
        chat=Chat(id=1, type="private"),
        text=text,
        entities=entities,
        caption=caption,
        caption_entities=caption_entities,
    )


class TestPayloadEncoder:
    """Test payload encoding and decoding."""

    def test_encode(self):
        assert encode_link_payload("app://c?id=1") == "YXBwOi8vYz9pZD0x"

    def test_encode_decode(self):
        link = "testapp://content?id=42"
        payload = encode_link_payload(link)
        assert "=" not in payload
        assert decode_link_payload(payload) == link

    def test_encode_empty(self):
        with pytest.raises(ValueError, match="empty"):
            encode_link_payload("")

    def test_encode_too_long(self):
        with pytest.raises(ValueError, match="64"):
            encode_link_payload("testapp://content?id=" + "x" * 60)

    def test_decode_invalid(self):
        with pytest.raises(ValueError):
            decode_link_payload("abcde")
        with pytest.raises(ValueError):
            decode_link_payload("_w")
        with pytest.raises(ValueError):
            decode_link_payload("")

    def test_generate_start_link(self):
        assert generate_start_link("demo_bot", "app://c?id=1") == "https://t.me/demo_bot?start=YXBwOi8vYz9pZD0x"


class TestMessageLinks:
    """Test link extraction from Telegram messages."""

    def test_start_payload(self):
        assert start_payload(make_message("/start YXBwOi8vYz9pZD0x")) == "YXBwOi8vYz9pZD0x"
        assert start_payload(make_message("/start@demo_bot abc")) == "abc"
        assert start_payload(make_message("/start")) is None
        assert start_payload(make_message("/started abc")) is None
        assert start_payload(make_message("hello")) is None

    def test_start_link(self):
        assert extract_message_links(make_message("/start YXBwOi8vYz9pZD0x")) == ["app://c?id=1"]

    def test_undecodable_start_payload(self):
        assert extract_message_links(make_message("/start _w")) == []

    def test_url_entities(self):
        text = "open https://test.com/app/x?id=1 now"
        entity = MessageEntity(type="url", offset=5, length=len("https://test.com/app/x?id=1"))
        assert extract_message_links(make_message(text, entities=[entity])) == ["https://test.com/app/x?id=1"]

    def test_text_link_in_caption(self):
        entity = MessageEntity(type="text_link", offset=0, length=4, url="testapp://content?id=9")
        message = make_message(caption="here", caption_entities=[entity])
        assert extract_message_links(message) == ["testapp://content?id=9"]

    def test_plain_text(self):
        assert extract_message_links(make_message("no links here")) == []


class TestTelegramLinkSource:
    """Test the queue-backed realtime stream."""

    @pytest.mark.asyncio
    async def test_push_and_iterate(self):
        source = TelegramLinkSource()
        assert source.push("testapp://content?id=1") is True
        assert source.push("testapp://content?id=2") is True
        await source.close()

        received = [link async for link in source]

        assert received == ["testapp://content?id=1", "testapp://content?id=2"]
        assert source.closed is True
        assert source.push("testapp://content?id=3") is False

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        source = TelegramLinkSource(maxsize=1)
        assert source.push("a") is True
        assert source.push("b") is False

    @pytest.mark.asyncio
    async def test_close_with_full_queue(self):
        source = TelegramLinkSource(maxsize=1)
        source.push("testapp://content?id=1")

        await asyncio.wait_for(source.close(), timeout=1)

        assert source.closed is True
        assert [link async for link in source] == []

    @pytest.mark.asyncio
    async def test_push_message(self):
        source = TelegramLinkSource()
        assert source.push_message(make_message("/start YXBwOi8vYz9pZD0x")) == 1
        link = await asyncio.wait_for(source.__aiter__().__anext__(), timeout=1)
        assert link == "app://c?id=1"


@pytest.mark.asyncio
async def test_middleware_pushes_links() -> None:
    source = TelegramLinkSource()
    middleware = DeepLinkMiddleware(source)
    seen = {}

    async def handler(event, data):
        seen.update(data)
        return "handled"

    result = await middleware(handler, make_message("/start YXBwOi8vYz9pZD0x"), {})

    assert result == "handled"
    assert seen["deep_links_pushed"] == 1
    await source.close()
    assert [link async for link in source] == ["app://c?id=1"]


@pytest.mark.asyncio
async def test_middleware_ignores_messages_without_links() -> None:
    middleware = DeepLinkMiddleware(TelegramLinkSource())
    seen = {}

    async def handler(event, data):
        seen.update(data)

    await middleware(handler, make_message("hello"), {})

    assert "deep_links_pushed" not in seen
