import pytest

from twitchbridge.auth_provider import RefreshingAuthProvider
from twitchbridge.token_store import Credential
from twitchbridge.twitch_api import TwitchAPIError


@pytest.mark.asyncio
async def test_fresh_token_is_returned_without_refresh(fake_api):
    provider = RefreshingAuthProvider(fake_api, clock=lambda: 100.0)
    provider.add_user("1", Credential(access_token="a", expires_in=3600, obtained_at=0.0))

    assert await provider.get_access_token("1") == "a"
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_expiring_token_is_replaced_and_reported(fake_api):
    refreshed = []
    old = Credential(access_token="a", refresh_token="r", expires_in=60, obtained_at=0.0)
    fake_api.refresh_result = Credential(access_token="b", refresh_token="r2")
    provider = RefreshingAuthProvider(
        fake_api, on_refresh=lambda uid, c: refreshed.append((uid, c)), clock=lambda: 45.0
    )
    provider.add_user("1", old)

    assert await provider.get_access_token("1") == "b"
    assert refreshed == [("1", fake_api.refresh_result)]
    # the original credential object is untouched
    assert old.access_token == "a"
    assert provider.get_credential("1") is fake_api.refresh_result


@pytest.mark.asyncio
async def test_async_refresh_callback_is_awaited(fake_api):
    seen = []

    async def on_refresh(uid, cred):
        seen.append(uid)

    fake_api.refresh_result = Credential(access_token="b")
    provider = RefreshingAuthProvider(fake_api, on_refresh=on_refresh, clock=lambda: 1e9)
    provider.add_user("1", Credential(access_token="a", refresh_token="r", expires_in=1))

    await provider.get_access_token("1")
    assert seen == ["1"]


@pytest.mark.asyncio
async def test_refresh_failure_propagates(fake_api):
    provider = RefreshingAuthProvider(fake_api, clock=lambda: 1e9)
    provider.add_user("1", Credential(access_token="a", refresh_token="r", expires_in=1))

    with pytest.raises(TwitchAPIError):
        await provider.get_access_token("1")


@pytest.mark.asyncio
async def test_unknown_user(fake_api):
    provider = RefreshingAuthProvider(fake_api)
    with pytest.raises(KeyError):
        await provider.get_access_token("nobody")


def test_add_remove(fake_api):
    provider = RefreshingAuthProvider(fake_api)
    cred = Credential(access_token="a")
    provider.add_user("1", cred)
    assert provider.has_user("1")
    assert provider.remove_user("1") is cred
    assert not provider.has_user("1")
    assert provider.remove_user("1") is None
