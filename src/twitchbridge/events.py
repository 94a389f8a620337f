from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandEvent:
    """A chat command as game clients receive it on /ws/events."""

    command: str
    user: str
    args: Tuple[str, ...] = ()
    channel: str = ""

    @classmethod
    def create(
        cls, command: str, user: str, args: Sequence[str] = (), channel: str = ""
    ) -> "CommandEvent":
        return cls(command=command, user=user, args=tuple(args), channel=channel)

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": "command",
            "command": self.command,
            "user": self.user,
            "args": list(self.args),
            "channel": self.channel,
        }


class EventBroadcaster:
    """Game client registry for the /ws/events stream.

    `publish_command` serializes the event once and sends it to every
    connected client; a client whose send fails is dropped and does not
    receive later events.
    """

    def __init__(self) -> None:
        self._clients: List[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self._clients.append(ws)
        logger.info("Game client connected (%d total)", len(self._clients))

    async def disconnect(self, ws: WebSocket) -> None:
        async with self._lock:
            if ws not in self._clients:
                return
            self._clients.remove(ws)
        logger.info("Game client disconnected (%d left)", len(self._clients))

    async def publish_command(self, event: CommandEvent) -> int:
        """Send `event` to all game clients. Returns how many received it."""
        return await self._send(json.dumps(event.to_message()))

    async def _send(self, text: str) -> int:
        delivered = 0
        async with self._lock:
            for ws in list(self._clients):
                try:
                    await ws.send_text(text)
                except Exception as exc:
                    logger.debug("Dropping game client after send failure: %s", exc)
                    self._clients.remove(ws)
                else:
                    delivered += 1
        return delivered
