"""Run the TwitchBridge server.

Starts the FastAPI app with uvicorn on TWITCHBRIDGE_HOST:TWITCHBRIDGE_PORT
(default localhost:3000). Configuration comes from the environment (or a
local .env), or from a JSON config file passed as the first argument.

Usage:
  - Register http://<host>:<port>/twitch/auth-callback as the redirect URL in the Twitch app
  - Start: python scripts/run_server.py [config.json]
  - Open http://<host>:<port>/twitch/auth in a browser and log in as the bot account
"""

import logging
import sys

import uvicorn

from twitchbridge.config import Config
from twitchbridge.server import create_app


def main() -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    cfg = Config.from_file(sys.argv[1]) if len(sys.argv) > 1 else Config.from_env()
    if not (cfg.platform.client_id and cfg.platform.client_secret):
        print("TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET must be set")
        return 1
    print("OAuth callback URL:", cfg.callback_url)
    uvicorn.run(create_app(cfg), host=cfg.host_name, port=cfg.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
