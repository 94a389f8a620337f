from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Union

from .token_store import Credential
from .twitch_api import TwitchAPI

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[str, Credential], Union[None, Awaitable[None]]]


class RefreshingAuthProvider:
    """In-memory registry of user credentials that refreshes them on demand.

    `get_access_token` hands out a token that is valid for at least the
    refresh skew; an expiring credential is swapped for the refreshed one
    and `on_refresh(user_id, credential)` is invoked so it can be persisted.
    """

    def __init__(
        self,
        api: TwitchAPI,
        on_refresh: Optional[RefreshCallback] = None,
        clock: Callable[[], float] = time.time,
        skew: float = 30.0,
    ) -> None:
        self._api = api
        self.on_refresh = on_refresh
        self._clock = clock
        self._skew = skew
        self._credentials: Dict[str, Credential] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def add_user(self, user_id: str, credential: Credential) -> None:
        self._credentials[user_id] = credential

    def remove_user(self, user_id: str) -> Optional[Credential]:
        self._locks.pop(user_id, None)
        return self._credentials.pop(user_id, None)

    def has_user(self, user_id: str) -> bool:
        return user_id in self._credentials

    def get_credential(self, user_id: str) -> Optional[Credential]:
        return self._credentials.get(user_id)

    @property
    def user_ids(self) -> list[str]:
        return list(self._credentials)

    async def get_access_token(self, user_id: str) -> str:
        """Return a usable access token for `user_id`, refreshing if needed.

        Raises KeyError for unknown users and TwitchAPIError when a needed
        refresh fails.
        """
        if user_id not in self._credentials:
            raise KeyError(user_id)
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            credential = self._credentials[user_id]
            if not credential.is_expired(now=self._clock(), skew=self._skew):
                return credential.access_token
            refreshed = await self._api.refresh(credential)
            self._credentials[user_id] = refreshed
            logger.info("Refreshed token for user %s", user_id)
            if self.on_refresh is not None:
                maybe = self.on_refresh(user_id, refreshed)
                if asyncio.iscoroutine(maybe):
                    await maybe
            return refreshed.access_token
