from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class PlatformConfig:
    client_id: str = ""
    client_secret: str = ""


@dataclass(frozen=True)
class BotConfig:
    """Which authorized user becomes the chat bot, and where it listens."""

    user: str = ""
    channel: str = ""


@dataclass
class Config:
    """Centralized runtime configuration for TwitchBridge.

    - platform: Twitch application credentials.
    - bot: login of the account promoted to chat bot once authorized, and the
      channel it joins.
    - port / host_name: where the HTTP server listens. Also used to build the
      OAuth callback address unless `public_url` is set.
    - cache_dir: Optional directory for cached user tokens. If None, the
      OS-appropriate default is used.
    - static_dir: Optional directory served at `/`.
    """

    platform: PlatformConfig = field(default_factory=PlatformConfig)
    bot: BotConfig = field(default_factory=BotConfig)
    port: int = 3000
    host_name: str = "localhost"
    public_url: Optional[str] = None
    cache_dir: Optional[Path] = None
    static_dir: Optional[Path] = None

    @property
    def base_url(self) -> str:
        if self.public_url:
            return self.public_url.rstrip("/")
        return f"http://{self.host_name}:{self.port}"

    @property
    def callback_url(self) -> str:
        return f"{self.base_url}/twitch/auth-callback"

    @classmethod
    def from_env(cls) -> "Config":
        cache = os.environ.get("TWITCHBRIDGE_CACHE_DIR")
        static = os.environ.get("TWITCHBRIDGE_STATIC_DIR")
        return cls(
            platform=PlatformConfig(
                client_id=os.environ.get("TWITCH_CLIENT_ID", ""),
                client_secret=os.environ.get("TWITCH_CLIENT_SECRET", ""),
            ),
            bot=BotConfig(
                user=os.environ.get("TWITCH_BOT_USER", ""),
                channel=os.environ.get("TWITCH_BOT_CHANNEL", ""),
            ),
            port=int(os.environ.get("TWITCHBRIDGE_PORT", "3000")),
            host_name=os.environ.get("TWITCHBRIDGE_HOST", "localhost"),
            public_url=os.environ.get("TWITCHBRIDGE_PUBLIC_URL") or None,
            cache_dir=Path(cache).expanduser() if cache else None,
            static_dir=Path(static) if static else None,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a Config from the parsed config-file structure.

        Expected shape:
          {"platform": {"clientId": ..., "clientSecret": ...},
           "bot": {"user": ..., "channel": ...},
           "port": 3000, "hostName": "localhost"}
        """
        platform = data.get("platform") or {}
        bot = data.get("bot") or {}
        cache = data.get("cacheDir")
        static = data.get("staticDir")
        return cls(
            platform=PlatformConfig(
                client_id=platform.get("clientId", ""),
                client_secret=platform.get("clientSecret", ""),
            ),
            bot=BotConfig(user=bot.get("user", ""), channel=bot.get("channel", "")),
            port=int(data.get("port", 3000)),
            host_name=data.get("hostName", "localhost"),
            public_url=data.get("publicUrl") or None,
            cache_dir=Path(cache) if cache else None,
            static_dir=Path(static) if static else None,
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "Config":
        with open(path, "r", encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))
