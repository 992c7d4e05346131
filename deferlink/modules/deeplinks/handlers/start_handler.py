import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware, F, Router
from aiogram.types import Message, TelegramObject

from deferlink.modules.deeplinks.infrastructure.telegram_links import TelegramLinkSource

logger = logging.getLogger(__name__)


class DeepLinkMiddleware(BaseMiddleware):
    def __init__(self, link_source: TelegramLinkSource):
        super().__init__()
        self.link_source = link_source

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        if isinstance(event, Message):
            try:
                pushed = self.link_source.push_message(event)
                if pushed:
                    data["deep_links_pushed"] = pushed
            except Exception as e:
                logger.error(f"Deep link extraction error: {e}", exc_info=True)

        return await handler(event, data)


def create_deep_link_middleware(link_source: TelegramLinkSource) -> DeepLinkMiddleware:
    return DeepLinkMiddleware(link_source)


def create_deep_link_router() -> Router:
    router = Router(name="deep_links")

    @router.message(F.text | F.caption)
    async def acknowledge(message: Message, deep_links_pushed: int = 0) -> None:
        if deep_links_pushed:
            await message.answer(f"Received {deep_links_pushed} link(s).")

    return router
