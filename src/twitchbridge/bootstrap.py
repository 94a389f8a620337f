from __future__ import annotations

import logging
from typing import List, Optional

from .auth_flow import BotAttach
from .auth_provider import RefreshingAuthProvider
from .ch_logging import ClickHouseLogger
from .config import Config
from .token_store import TokenStore
from .twitch_api import TwitchAPI, TwitchAPIError, UserIdentity

logger = logging.getLogger(__name__)


class BootstrapLoader:
    """Restores cached credentials into the auth provider at startup.

    A user whose identity cannot be resolved is logged and skipped; its cache
    file is kept so a transient Twitch outage does not log everyone out.
    """

    def __init__(
        self,
        config: Config,
        token_store: TokenStore,
        api: TwitchAPI,
        auth_provider: RefreshingAuthProvider,
        on_bot_authorized: Optional[BotAttach] = None,
        event_log: Optional[ClickHouseLogger] = None,
    ) -> None:
        self.config = config
        self.token_store = token_store
        self.api = api
        self.auth_provider = auth_provider
        self.on_bot_authorized = on_bot_authorized
        self.event_log = event_log or ClickHouseLogger(client=None)

    async def _resolve(self, user_id: str) -> Optional[UserIdentity]:
        token = await self.auth_provider.get_access_token(user_id)
        return await self.api.get_user_by_id(user_id, token)

    async def load_all(self) -> List[UserIdentity]:
        restored: List[UserIdentity] = []
        bot_user = self.config.bot.user.lower()
        for user_id, credential in self.token_store.list_all():
            self.auth_provider.add_user(user_id, credential)
            try:
                identity = await self._resolve(user_id)
            except (TwitchAPIError, OSError) as exc:
                logger.warning("Skipping cached user %s: lookup failed: %s", user_id, exc)
                self.auth_provider.remove_user(user_id)
                continue
            except Exception:
                logger.exception("Skipping cached user %s: unexpected error", user_id)
                self.auth_provider.remove_user(user_id)
                continue
            if identity is None:
                logger.warning("Skipping cached user %s: not found on Twitch", user_id)
                self.auth_provider.remove_user(user_id)
                continue

            restored.append(identity)
            logger.info("Restored cached token for %s (%s)", identity.login, user_id)
            self.event_log.log_auth_event(identity.login, "restored", {"id": user_id})

            if bot_user and identity.login.lower() == bot_user and self.on_bot_authorized:
                try:
                    await self.on_bot_authorized(identity)
                except Exception:
                    logger.exception("Attaching chat bot for %s failed", identity.login)
        return restored
