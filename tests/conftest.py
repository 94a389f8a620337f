import pytest

from twitchbridge.config import BotConfig, Config, PlatformConfig
from twitchbridge.token_store import Credential
from twitchbridge.twitch_api import TwitchAPIError, UserIdentity


class FakeTwitchAPI:
    """Stands in for TwitchAPI; records calls, returns canned values."""

    def __init__(self):
        self.exchange_result = Credential(access_token="X")
        self.exchange_error = None
        self.authorized_user = UserIdentity(id="1001", login="viewer", display_name="Viewer")
        self.lookup_error = None
        # user_id -> UserIdentity | Exception
        self.users = {}
        self.refresh_result = None
        self.calls = []

    async def exchange_code(self, code, redirect_uri):
        self.calls.append(("exchange_code", code, redirect_uri))
        if self.exchange_error:
            raise self.exchange_error
        return self.exchange_result

    async def get_authorized_user(self, access_token):
        self.calls.append(("get_authorized_user", access_token))
        if self.lookup_error:
            raise self.lookup_error
        return self.authorized_user

    async def get_user_by_id(self, user_id, access_token):
        self.calls.append(("get_user_by_id", user_id, access_token))
        found = self.users.get(user_id)
        if isinstance(found, Exception):
            raise found
        return found

    async def refresh(self, credential):
        self.calls.append(("refresh", credential.refresh_token))
        if self.refresh_result is None:
            raise TwitchAPIError("refresh failed")
        return self.refresh_result

    async def revoke(self, access_token):
        self.calls.append(("revoke", access_token))


class FakeBot:
    def __init__(self, token, channel, router):
        self.token = token
        self.channel = channel
        self.router = router
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True


class BotFactory:
    def __init__(self):
        self.bots = []

    def __call__(self, token, channel, router):
        bot = FakeBot(token, channel, router)
        self.bots.append(bot)
        return bot


@pytest.fixture
def config(tmp_path):
    return Config(
        platform=PlatformConfig(client_id="cid123", client_secret="secret"),
        bot=BotConfig(user="MyBot", channel="mychannel"),
        port=3000,
        host_name="localhost",
        cache_dir=tmp_path / "tokens",
    )


@pytest.fixture
def fake_api():
    return FakeTwitchAPI()


@pytest.fixture
def bot_factory():
    return BotFactory()
