from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from .config import AppConfig
from ..modules.deeplinks.domain.models import DeepLinkConfig
from ..modules.deeplinks.handlers.start_handler import create_deep_link_middleware, create_deep_link_router
from ..modules.deeplinks.infrastructure.file_storage import JsonFileKeyValueStore
from ..modules.deeplinks.infrastructure.storage import SQLiteKeyValueStore
from ..modules.deeplinks.infrastructure.telegram_links import TelegramLinkSource
from ..modules.deeplinks.services.deep_link_service import DeepLinkService

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    config: AppConfig
    link_config: DeepLinkConfig
    storage: Union[SQLiteKeyValueStore, JsonFileKeyValueStore]
    link_source: TelegramLinkSource
    deep_links: DeepLinkService
    received: list[str] = field(default_factory=list)

    @classmethod
    async def build(cls, config: AppConfig) -> "AppContainer":
        storage: Union[SQLiteKeyValueStore, JsonFileKeyValueStore]
        if config.storage_backend == "json":
            storage = JsonFileKeyValueStore(config.storage_path)
        else:
            storage = SQLiteKeyValueStore(config.storage_path)
            await storage.initialize()

        received: list[str] = []

        def on_deep_link(link: str) -> None:
            received.append(link)
            logger.info("Deep link routed: %s", link)

        def on_error(message: str) -> None:
            logger.warning("Deep link error: %s", message)

        def on_attribution_data(data: dict) -> None:
            logger.info("Attribution outcome: %s", data)

        link_config = config.to_link_config(
            logger=logging.getLogger("deferlink"),
            on_deep_link=on_deep_link,
            on_error=on_error,
            on_attribution_data=on_attribution_data,
        )
        link_source = TelegramLinkSource()
        deep_links = DeepLinkService(
            link_config,
            storage=storage,
            link_stream=link_source,
            platform=config.platform,
        )
        return cls(
            config=config,
            link_config=link_config,
            storage=storage,
            link_source=link_source,
            deep_links=deep_links,
            received=received,
        )

    def create_bot(self) -> Bot:
        return Bot(
            token=self.config.telegram_bot_token,
            default=DefaultBotProperties(parse_mode="HTML"),
        )

    def create_dispatcher(self) -> Dispatcher:
        dispatcher = Dispatcher()
        dispatcher.message.outer_middleware(create_deep_link_middleware(self.link_source))
        dispatcher.include_router(create_deep_link_router())
        dispatcher.startup.register(self.on_startup)
        dispatcher.shutdown.register(self.on_shutdown)
        return dispatcher

    async def on_startup(self, bot: Bot) -> None:
        await self.deep_links.initialize()

    async def on_shutdown(self, bot: Bot) -> None:
        await self.deep_links.dispose()
        await self.link_source.close()
