from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from .auth_flow import AuthError, AuthorizationFlow
from .auth_provider import RefreshingAuthProvider
from .bootstrap import BootstrapLoader
from .ch_logging import ClickHouseLogger, get_logger
from .chat_bot import BotConnector, BotFactory, twitchio_bot
from .commands import build_default_router
from .config import Config
from .events import EventBroadcaster
from .nonce import StateNonceRegistry
from .token_store import TokenStore
from .twitch_api import TwitchAPI

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    *,
    api: TwitchAPI | None = None,
    token_store: TokenStore | None = None,
    nonces: StateNonceRegistry | None = None,
    bot_factory: BotFactory = twitchio_bot,
    event_log: ClickHouseLogger | None = None,
) -> FastAPI:
    """Create the FastAPI app for TwitchBridge.

    Every collaborator can be injected; anything not given is built from
    `config` (or `Config.from_env()`). Cached tokens are restored when the app
    starts up.
    """
    cfg = config or Config.from_env()
    events_log = event_log or get_logger()
    api = api or TwitchAPI(cfg.platform.client_id, cfg.platform.client_secret)
    store = token_store or TokenStore(cfg.cache_dir)
    registry = nonces or StateNonceRegistry()

    auth_provider = RefreshingAuthProvider(api, on_refresh=store.save)
    broadcaster = EventBroadcaster()
    router = build_default_router(broadcaster, events_log)
    connector = BotConnector(router, auth_provider, cfg.bot.channel, bot_factory)

    flow = AuthorizationFlow(
        cfg,
        registry,
        api,
        store,
        auth_provider,
        on_bot_authorized=connector.attach,
        event_log=events_log,
    )
    loader = BootstrapLoader(
        cfg,
        store,
        api,
        auth_provider,
        on_bot_authorized=connector.attach,
        event_log=events_log,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        restored = await loader.load_all()
        logger.info("Restored %d cached user(s)", len(restored))
        try:
            yield
        finally:
            await connector.close()
            registry.close()

    app = FastAPI(lifespan=lifespan)
    app.state.config = cfg
    app.state.flow = flow
    app.state.loader = loader
    app.state.token_store = store
    app.state.nonces = registry
    app.state.auth_provider = auth_provider
    app.state.router = router
    app.state.connector = connector
    app.state.broadcaster = broadcaster

    @app.get("/twitch/auth")
    async def twitch_auth():
        return RedirectResponse(flow.begin_auth(), status_code=302)

    @app.get("/twitch/auth-callback", response_class=PlainTextResponse)
    async def twitch_auth_callback(
        code: Optional[str] = Query(default=None),
        state: Optional[str] = Query(default=None),
    ):
        try:
            identity = await flow.complete_auth(code, state)
        except AuthError as err:
            return PlainTextResponse(str(err), status_code=err.status_code)
        return PlainTextResponse(f"welcome {identity.display_name or identity.login}!")

    @app.get("/healthz")
    async def healthz():
        return {
            "status": "ok",
            "pending_states": len(registry),
            "bot_connected": connector.connected,
            "game_clients": broadcaster.client_count,
        }

    @app.websocket("/ws/events")
    async def ws_events(ws: WebSocket):
        await broadcaster.connect(ws)
        try:
            while True:
                # keep connection open; clients may send pings
                await ws.receive_text()
        except WebSocketDisconnect:
            await broadcaster.disconnect(ws)

    # serve the landing page and assets last so API routes take precedence
    if cfg.static_dir is not None and cfg.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=cfg.static_dir, html=True), name="static")

    return app


def main() -> int:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    cfg = Config.from_env()
    uvicorn.run(create_app(cfg), host=cfg.host_name, port=cfg.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
