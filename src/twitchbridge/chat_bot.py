from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from .auth_provider import RefreshingAuthProvider
from .commands import CommandRouter
from .twitch_api import UserIdentity

logger = logging.getLogger(__name__)


class ChatConnection(Protocol):
    async def start(self) -> None:
        ...

    async def close(self) -> None:
        ...


BotFactory = Callable[[str, str, CommandRouter], ChatConnection]


def twitchio_bot(token: str, channel: str, router: CommandRouter) -> ChatConnection:
    """Build a twitchio chat bot that feeds every chat line into `router`."""
    from twitchio.ext import commands

    class _Bot(commands.Bot):
        def __init__(self) -> None:
            super().__init__(
                token=token, prefix=router.prefix, initial_channels=[channel]
            )

        async def event_ready(self) -> None:
            logger.info("Chat bot %s joined #%s", self.nick, channel)

        async def event_message(self, message: Any) -> None:
            # ignore messages the bot sent itself
            if message.echo:
                return
            author = message.author.display_name or message.author.name
            await router.dispatch(author, message.content, message.channel.name)

    return _Bot()


class BotConnector:
    """Owns the single live chat connection for the configured bot account.

    attach() always builds a new connection; an existing one is closed first.
    """

    def __init__(
        self,
        router: CommandRouter,
        auth_provider: RefreshingAuthProvider,
        channel: str,
        bot_factory: BotFactory = twitchio_bot,
    ) -> None:
        self.router = router
        self.auth_provider = auth_provider
        self.channel = channel
        self._factory = bot_factory
        self._bot: Optional[ChatConnection] = None
        self._task: Optional[asyncio.Task] = None
        self.identity: Optional[UserIdentity] = None

    @property
    def connected(self) -> bool:
        return self._bot is not None

    async def attach(self, identity: UserIdentity) -> None:
        if not self.channel:
            raise RuntimeError("no bot channel configured")
        token = await self.auth_provider.get_access_token(identity.id)
        await self.close()
        self._bot = self._factory(token, self.channel, self.router)
        self.identity = identity
        # run bot in background task
        self._task = asyncio.get_running_loop().create_task(self._bot.start())
        logger.info("Attached chat bot %s to #%s", identity.login, self.channel)

    async def close(self) -> None:
        bot, task = self._bot, self._task
        self._bot = self._task = None
        self.identity = None
        if bot is not None:
            try:
                await bot.close()
            except Exception as exc:
                logger.warning("Closing chat bot failed: %s", exc)
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except asyncio.TimeoutError:
                task.cancel()
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.warning("Chat bot task ended with error: %s", exc)
