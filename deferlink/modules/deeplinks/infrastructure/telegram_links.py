"""
Telegram messages as a realtime deep link stream.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Optional

from aiogram.enums import MessageEntityType
from aiogram.types import Message

from ..utils.payload_encoder import decode_link_payload

logger = logging.getLogger(__name__)

START_COMMAND = "/start"


class TelegramLinkSource:
    """
    Queue-backed async iterable of links seen in incoming messages.

    Each ``async for`` over the source starts a fresh iterator on the same
    queue, so a consumer can re-subscribe after being cancelled.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, link: str) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(link)
        except asyncio.QueueFull:
            logger.warning("Link queue is full, dropping %s", link)
            return False
        return True

    def push_message(self, message: Message) -> int:
        links = extract_message_links(message)
        return sum(1 for link in links if self.push(link))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            dropped = self._queue.get_nowait()
            self._queue.task_done()
            logger.warning("Link queue is full on close, dropping %s", dropped)
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            self._queue.task_done()
            if item is None:
                break
            yield item


def start_payload(message: Message) -> Optional[str]:
    text = message.text or ""
    if not text.startswith(START_COMMAND):
        return None
    command, _, args = text.partition(" ")
    # /start@BotName is the same command addressed to a specific bot
    if command.split("@", 1)[0] != START_COMMAND:
        return None
    args = args.strip()
    return args or None


def extract_message_links(message: Message) -> list[str]:
    """
    Collect links from a message: a decodable /start payload first, then
    URL and text-link entities of the text or caption in order.
    """
    links: list[str] = []

    payload = start_payload(message)
    if payload:
        try:
            links.append(decode_link_payload(payload))
        except ValueError as e:
            logger.debug("Ignoring undecodable start payload %r: %s", payload, e)

    for text, entities in ((message.text, message.entities), (message.caption, message.caption_entities)):
        if not text or not entities:
            continue
        for entity in entities:
            if entity.type == MessageEntityType.URL:
                links.append(entity.extract_from(text))
            elif entity.type == MessageEntityType.TEXT_LINK and entity.url:
                links.append(entity.url)

    return links
