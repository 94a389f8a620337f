from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Union

from .ch_logging import ClickHouseLogger
from .events import CommandEvent, EventBroadcaster

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageContext:
    sender: str
    text: str
    channel: str = ""
    command: str = ""
    args: List[str] = field(default_factory=list)


Handler = Callable[[MessageContext], Union[None, Awaitable[None]]]


class CommandRouter:
    """Flat table from command word to handler.

    A message dispatches when it starts with `prefix` and the first
    whitespace-delimited token after the prefix is a registered name
    (exact, case-sensitive). Anything else is ignored.
    """

    def __init__(self, prefix: str = "!") -> None:
        if not prefix:
            raise ValueError("prefix must be non-empty")
        self.prefix = prefix
        self._handlers: Dict[str, Handler] = {}

    @property
    def names(self) -> List[str]:
        return sorted(self._handlers)

    def register(self, name: str, handler: Handler) -> None:
        if not name or any(c.isspace() for c in name):
            raise ValueError(f"invalid command name: {name!r}")
        self._handlers[name] = handler

    def command(self, name: str) -> Callable[[Handler], Handler]:
        def deco(fn: Handler) -> Handler:
            self.register(name, fn)
            return fn

        return deco

    def parse(self, text: str) -> Optional[tuple[str, List[str]]]:
        if not text.startswith(self.prefix):
            return None
        rest = text[len(self.prefix) :]
        # the command word must follow the prefix directly
        if not rest or rest[0].isspace():
            return None
        parts = rest.split()
        return parts[0], parts[1:]

    async def dispatch(self, sender: str, text: str, channel: str = "") -> bool:
        """Run the handler for `text`, if any. Returns True when one ran."""
        parsed = self.parse(text)
        if parsed is None:
            return False
        name, args = parsed
        handler = self._handlers.get(name)
        if handler is None:
            return False
        ctx = MessageContext(
            sender=sender, text=text, channel=channel, command=name, args=args
        )
        try:
            maybe = handler(ctx)
            if asyncio.iscoroutine(maybe):
                await maybe
        except Exception:
            logger.exception("Handler for %s%s failed", self.prefix, name)
        return True


# the fixed command set game clients understand
GAME_COMMANDS = ("join", "leave", "vote")


def build_default_router(
    broadcaster: EventBroadcaster,
    event_log: Optional[ClickHouseLogger] = None,
    prefix: str = "!",
) -> CommandRouter:
    """Router whose commands are forwarded to game clients as events."""
    router = CommandRouter(prefix=prefix)
    events = event_log or ClickHouseLogger(client=None)

    def _forward(name: str) -> Handler:
        async def handler(ctx: MessageContext) -> None:
            event = CommandEvent.create(name, ctx.sender, ctx.args, ctx.channel)
            delivered = await broadcaster.publish_command(event)
            logger.debug("Forwarded %s%s to %d game client(s)", prefix, name, delivered)
            events.log_command(ctx.channel, ctx.sender, name, ctx.args)

        return handler

    for name in GAME_COMMANDS:
        router.register(name, _forward(name))
    return router
