import time
import urllib.parse

from fastapi.testclient import TestClient

from twitchbridge.ch_logging import ClickHouseLogger
from twitchbridge.server import create_app
from twitchbridge.token_store import Credential, TokenStore
from twitchbridge.twitch_api import TwitchAPIError, UserIdentity


def make_client(config, fake_api, bot_factory):
    app = create_app(
        config,
        api=fake_api,
        bot_factory=bot_factory,
        event_log=ClickHouseLogger(client=None),
    )
    return app, TestClient(app)


def start_auth(client):
    r = client.get("/twitch/auth", follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    return location, urllib.parse.parse_qs(urllib.parse.urlparse(location).query)


def test_auth_redirects_to_twitch(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        location, q = start_auth(client)

    assert location.startswith("https://id.twitch.tv/oauth2/authorize")
    assert q["client_id"] == ["cid123"]
    assert q["state"][0]


def test_callback_success_caches_token(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        _, q = start_auth(client)
        r = client.get(
            "/twitch/auth-callback", params={"code": "abc", "state": q["state"][0]}
        )
        assert r.status_code == 200
        assert r.text == "welcome Viewer!"

        # replay of the same callback fails
        r2 = client.get(
            "/twitch/auth-callback", params={"code": "abc", "state": q["state"][0]}
        )
        assert r2.status_code == 400

    assert TokenStore(config.cache_dir).load("1001") == Credential(access_token="X")


def test_callback_missing_params_is_400(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        r = client.get("/twitch/auth-callback", params={"code": "abc"})
        assert r.status_code == 400
        assert r.headers["content-type"].startswith("text/plain")
        r = client.get("/twitch/auth-callback")
        assert r.status_code == 400


def test_callback_unknown_state_is_400_without_exchange(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        r = client.get("/twitch/auth-callback", params={"code": "abc", "state": "unknown"})

    assert r.status_code == 400
    assert r.text == "invalid or expired state"
    assert not any(c[0] == "exchange_code" for c in fake_api.calls)


def test_callback_downstream_failure_is_500(config, fake_api, bot_factory):
    fake_api.exchange_error = TwitchAPIError("boom")
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        _, q = start_auth(client)
        r = client.get(
            "/twitch/auth-callback", params={"code": "abc", "state": q["state"][0]}
        )

    assert r.status_code == 500
    # internal detail stays server-side
    assert "boom" not in r.text


def test_bot_authorization_attaches_chat(config, fake_api, bot_factory):
    fake_api.authorized_user = UserIdentity(id="7", login="mybot", display_name="MyBot")
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        _, q = start_auth(client)
        r = client.get(
            "/twitch/auth-callback", params={"code": "abc", "state": q["state"][0]}
        )
        assert r.text == "welcome MyBot!"
        health = client.get("/healthz").json()
        assert health["bot_connected"] is True
        assert bot_factory.bots[0].channel == "mychannel"

    # shutdown closes the bot
    assert bot_factory.bots[0].closed


def test_startup_restores_cache_and_survives_corrupt_file(config, fake_api, bot_factory):
    store = TokenStore(config.cache_dir)
    store.save("7", Credential(access_token="bot"))
    (config.cache_dir / "user-99.json").write_text("not json", encoding="utf-8")
    fake_api.users = {"7": UserIdentity("7", "mybot", "MyBot")}

    app, client = make_client(config, fake_api, bot_factory)
    with client:
        assert app.state.auth_provider.user_ids == ["7"]
        assert client.get("/healthz").json()["bot_connected"] is True

    assert store.load("99") is None


def test_healthz_counts_pending_states(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        start_auth(client)
        start_auth(client)
        body = client.get("/healthz").json()

    assert body["status"] == "ok"
    assert body["pending_states"] == 2


def test_events_websocket_receives_commands(config, fake_api, bot_factory):
    app, client = make_client(config, fake_api, bot_factory)
    with client:
        with client.websocket_connect("/ws/events") as ws:
            # registration happens just after the accept frame is sent
            deadline = time.time() + 2.0
            while not app.state.broadcaster.client_count and time.time() < deadline:
                time.sleep(0.01)
            assert client.get("/healthz").json()["game_clients"] == 1
            client.portal.call(app.state.router.dispatch, "Alice", "!join", "mychannel")
            msg = ws.receive_json()

    assert msg == {
        "type": "command",
        "command": "join",
        "user": "Alice",
        "args": [],
        "channel": "mychannel",
    }


def test_static_dir_is_served(config, fake_api, bot_factory, tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    (static / "index.html").write_text("<h1>connect</h1>", encoding="utf-8")
    config.static_dir = static

    app, client = make_client(config, fake_api, bot_factory)
    with client:
        assert "connect" in client.get("/").text
        assert client.get("/healthz").status_code == 200
