"""TwitchBridge package.

Loads a local .env file if present (development convenience) so Twitch
credentials can live outside the shell environment.
"""

from typing import List

from dotenv import load_dotenv

load_dotenv()

from .config import BotConfig, Config, PlatformConfig  # noqa: E402
from .token_store import Credential, TokenStore  # noqa: E402

__all__: List[str] = [
    "BotConfig",
    "Config",
    "Credential",
    "PlatformConfig",
    "TokenStore",
]
