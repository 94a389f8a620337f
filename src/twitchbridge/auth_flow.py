from __future__ import annotations

import logging
import urllib.parse
from typing import Awaitable, Callable, Optional, Sequence

from .auth_provider import RefreshingAuthProvider
from .ch_logging import ClickHouseLogger
from .config import Config
from .nonce import StateNonceRegistry
from .token_store import TokenStore
from .twitch_api import TwitchAPI, TwitchAPIError, UserIdentity

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://id.twitch.tv/oauth2/authorize"

# chat:read to receive commands, chat:edit so the bot may answer
SCOPES: Sequence[str] = ("chat:read", "chat:edit")

BotAttach = Callable[[UserIdentity], Awaitable[None]]


class AuthError(Exception):
    """Base error for a failed authorization callback.

    `status_code` is the HTTP status to answer with; `str(err)` is safe to show
    to the browser.
    """

    status_code = 500
    message = "authorization failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class MissingParameter(AuthError):
    status_code = 400
    message = "missing code or state"


class InvalidState(AuthError):
    # unknown, expired and replayed states are deliberately indistinguishable
    status_code = 400
    message = "invalid or expired state"


class ExchangeFailed(AuthError):
    message = "could not exchange authorization code"


class TokenUnavailable(AuthError):
    message = "no token received from Twitch"


class UserLookupFailed(AuthError):
    message = "could not look up the authorized user"


class AuthorizationFlow:
    """Drives the authorization-code handshake with Twitch.

    begin_auth() -> redirect URL carrying a fresh state nonce
    complete_auth(code, state) -> UserIdentity, or raises AuthError

    On success the credential is registered with the auth provider and cached
    in the token store before the bot (if this is the bot account) is attached.
    """

    def __init__(
        self,
        config: Config,
        nonces: StateNonceRegistry,
        api: TwitchAPI,
        token_store: TokenStore,
        auth_provider: RefreshingAuthProvider,
        on_bot_authorized: Optional[BotAttach] = None,
        event_log: Optional[ClickHouseLogger] = None,
        scopes: Sequence[str] = SCOPES,
    ) -> None:
        self.config = config
        self.nonces = nonces
        self.api = api
        self.token_store = token_store
        self.auth_provider = auth_provider
        self.on_bot_authorized = on_bot_authorized
        self.event_log = event_log or ClickHouseLogger(client=None)
        self.scopes = tuple(scopes)

    def is_bot(self, identity: UserIdentity) -> bool:
        bot_user = self.config.bot.user
        return bool(bot_user) and identity.login.lower() == bot_user.lower()

    def begin_auth(self) -> str:
        state = self.nonces.issue()
        params = {
            "client_id": self.config.platform.client_id,
            "redirect_uri": self.config.callback_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    async def complete_auth(
        self, code: Optional[str], state: Optional[str]
    ) -> UserIdentity:
        if not code or not state:
            raise MissingParameter()
        if not self.nonces.consume(state):
            raise InvalidState()

        try:
            credential = await self.api.exchange_code(code, self.config.callback_url)
        except TwitchAPIError as exc:
            logger.error("Authorization code exchange failed: %s", exc)
            raise ExchangeFailed() from exc
        if credential is None or not credential.access_token:
            logger.error("Authorization code exchange returned no token")
            raise TokenUnavailable()

        try:
            identity = await self.api.get_authorized_user(credential.access_token)
        except TwitchAPIError as exc:
            logger.error("User lookup after code exchange failed: %s", exc)
            raise UserLookupFailed() from exc
        if identity is None:
            logger.error("User lookup after code exchange returned no user")
            raise UserLookupFailed()

        self.auth_provider.add_user(identity.id, credential)
        # cache before attaching so a restart can always find the bot token
        self.token_store.save(identity.id, credential)
        logger.info("Authorized %s (%s)", identity.login, identity.id)
        self.event_log.log_auth_event(identity.login, "authorized", {"id": identity.id})

        if self.is_bot(identity) and self.on_bot_authorized is not None:
            try:
                await self.on_bot_authorized(identity)
            except Exception:
                logger.exception("Attaching chat bot for %s failed", identity.login)

        return identity

    async def revoke(self, user_id: str) -> bool:
        """Forget a user's cached credential and revoke it at Twitch.

        Returns True if anything was cached for the user.
        """
        credential = self.auth_provider.remove_user(user_id)
        if credential is None:
            credential = self.token_store.load(user_id)
        removed = self.token_store.remove(user_id)
        if credential is not None:
            try:
                await self.api.revoke(credential.access_token)
            except TwitchAPIError as exc:
                logger.warning("Revoking token for user %s at Twitch failed: %s", user_id, exc)
            self.event_log.log_auth_event(user_id, "revoked")
        return removed or credential is not None
