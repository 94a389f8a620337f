import json
from pathlib import Path

from twitchbridge.config import Config
from twitchbridge.paths import default_cache_dir, default_data_dir
from twitchbridge.token_store import TokenStore


def test_from_dict_reads_config_file_shape():
    cfg = Config.from_dict(
        {
            "platform": {"clientId": "cid", "clientSecret": "sec"},
            "bot": {"user": "mybot", "channel": "chan"},
            "port": 8080,
            "hostName": "example.test",
        }
    )
    assert cfg.platform.client_id == "cid"
    assert cfg.platform.client_secret == "sec"
    assert cfg.bot.user == "mybot"
    assert cfg.bot.channel == "chan"
    assert cfg.callback_url == "http://example.test:8080/twitch/auth-callback"


def test_public_url_overrides_callback_base():
    cfg = Config(public_url="https://bridge.example.test/")
    assert cfg.callback_url == "https://bridge.example.test/twitch/auth-callback"


def test_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"platform": {"clientId": "cid"}, "cacheDir": str(tmp_path / "c")}),
        encoding="utf-8",
    )
    cfg = Config.from_file(path)
    assert cfg.platform.client_id == "cid"
    assert cfg.cache_dir == tmp_path / "c"
    assert cfg.port == 3000


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TWITCH_CLIENT_ID", "cid")
    monkeypatch.setenv("TWITCH_CLIENT_SECRET", "sec")
    monkeypatch.setenv("TWITCH_BOT_USER", "mybot")
    monkeypatch.setenv("TWITCH_BOT_CHANNEL", "chan")
    monkeypatch.setenv("TWITCHBRIDGE_PORT", "4000")
    monkeypatch.setenv("TWITCHBRIDGE_CACHE_DIR", str(tmp_path))
    monkeypatch.delenv("TWITCHBRIDGE_PUBLIC_URL", raising=False)

    cfg = Config.from_env()

    assert cfg.platform.client_id == "cid"
    assert cfg.bot.channel == "chan"
    assert cfg.port == 4000
    assert cfg.cache_dir == Path(tmp_path)


def test_data_dir_override(monkeypatch, tmp_path):
    target = tmp_path / "data"
    monkeypatch.setenv("TWITCHBRIDGE_DATA_DIR", str(target))

    assert default_data_dir() == target
    assert target.is_dir()
    assert default_cache_dir() == target / "tokens"


def test_cache_dir_env_is_read_only_through_config(monkeypatch, tmp_path):
    data = tmp_path / "data"
    cache = tmp_path / "elsewhere"
    monkeypatch.setenv("TWITCHBRIDGE_DATA_DIR", str(data))
    monkeypatch.setenv("TWITCHBRIDGE_CACHE_DIR", str(cache))

    # the path default ignores the cache override
    assert default_cache_dir() == data / "tokens"
    assert TokenStore().cache_dir == data / "tokens"
    # the configured store honours it
    assert TokenStore(Config.from_env().cache_dir).cache_dir == cache
    assert cache.is_dir()
