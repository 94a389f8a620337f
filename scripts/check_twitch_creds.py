import asyncio
import os

from twitchbridge.auth_provider import RefreshingAuthProvider
from twitchbridge.config import Config
from twitchbridge.token_store import TokenStore
from twitchbridge.twitch_api import TwitchAPI, TwitchAPIError


async def main():
    print("Checking environment variables...")
    print("TWITCH_CLIENT_ID present:", bool(os.getenv("TWITCH_CLIENT_ID")))
    print("TWITCH_CLIENT_SECRET present:", bool(os.getenv("TWITCH_CLIENT_SECRET")))
    print("TWITCH_BOT_USER:", os.getenv("TWITCH_BOT_USER"))

    cfg = Config.from_env()
    store = TokenStore(cfg.cache_dir)
    api = TwitchAPI(cfg.platform.client_id, cfg.platform.client_secret)
    provider = RefreshingAuthProvider(api, on_refresh=store.save)
    print("Token cache:", store.cache_dir)

    found = False
    for user_id, credential in store.list_all():
        found = True
        provider.add_user(user_id, credential)
        try:
            token = await provider.get_access_token(user_id)
            user = await api.get_user_by_id(user_id, token)
        except TwitchAPIError as exc:
            print("User", user_id, "lookup failed:", repr(exc))
            continue
        if user:
            bot = " (bot)" if user.login == cfg.bot.user.lower() else ""
            print("User", user_id, "ok: login=", user.login, bot)
        else:
            print("User", user_id, "not found on Twitch")
    if not found:
        print("No cached tokens. Authorize via /twitch/auth first.")


if __name__ == "__main__":
    asyncio.run(main())
