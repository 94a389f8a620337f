"""ClickHouse event log for TwitchBridge.

Sends chat-command and authorization events to ClickHouse so stream activity
can be analysed later. If no ClickHouse endpoint is configured this module
hands out a no-op logger, so nothing else has to care.

Usage:
  from twitchbridge.ch_logging import get_logger
  events = get_logger()
  events.log_command(channel, username, "vote", ["red"])

Configuration via env:
  CLICKHOUSE_HOST, CLICKHOUSE_PORT, CLICKHOUSE_USER, CLICKHOUSE_PASSWORD, CLICKHOUSE_DB

Also provides `CLICKHOUSE_DDL` for creating the recommended table.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from clickhouse_driver import Client as CHClient

log = logging.getLogger(__name__)

CLICKHOUSE_DDL = [
    """
    CREATE TABLE IF NOT EXISTS twitchbridge_events (
        ts DateTime64(3),
        event_type String,
        channel String,
        user String,
        name Nullable(String),
        details String
    )
    ENGINE = MergeTree()
    PARTITION BY toYYYYMMDD(ts)
    ORDER BY (channel, ts)
    TTL ts + INTERVAL 90 DAY
    """
]

INSERT_SQL = (
    "INSERT INTO twitchbridge_events (ts, event_type, channel, user, name, details) VALUES"
)


@dataclass
class ClickHouseLogger:
    client: Any | None
    database: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _insert(self, row: Dict[str, Any]) -> None:
        if not self.client:
            return
        try:
            self.client.execute(
                INSERT_SQL,
                [
                    (
                        row.get("ts"),
                        row.get("event_type"),
                        row.get("channel") or "",
                        row.get("user") or "",
                        row.get("name"),
                        json.dumps(row.get("details") or {}),
                    )
                ],
            )
        except Exception as exc:
            # event logging must never break the app
            log.warning("ClickHouse insert failed: %s", exc)

    def log_command(
        self,
        channel: str,
        username: str,
        command: str,
        args: Sequence[str] = (),
        ts: Optional[datetime] = None,
    ) -> None:
        self._insert(
            {
                "ts": ts or datetime.now(timezone.utc),
                "event_type": "chat_command",
                "channel": channel,
                "user": username,
                "name": command,
                "details": {"args": list(args)},
            }
        )

    def log_auth_event(
        self,
        username: str,
        outcome: str,
        extra: Optional[Dict[str, Any]] = None,
        ts: Optional[datetime] = None,
    ) -> None:
        """Record an authorization outcome, e.g. 'authorized', 'restored', 'revoked'."""
        self._insert(
            {
                "ts": ts or datetime.now(timezone.utc),
                "event_type": "auth",
                "channel": "",
                "user": username,
                "name": outcome,
                "details": extra or {},
            }
        )


def get_logger() -> ClickHouseLogger:
    """Return a ClickHouseLogger bound to the configured host.

    If CLICKHOUSE_HOST is not set, or the client cannot be created, return a
    no-op logger.
    """
    host = os.environ.get("CLICKHOUSE_HOST")
    if not host:
        return ClickHouseLogger(client=None)

    port = int(os.environ.get("CLICKHOUSE_PORT", "9000"))
    user = os.environ.get("CLICKHOUSE_USER") or "default"
    password = os.environ.get("CLICKHOUSE_PASSWORD") or ""
    database = os.environ.get("CLICKHOUSE_DB")

    try:
        client = CHClient(
            host=host,
            port=port,
            user=user,
            password=password,
            database=database or "default",
        )
        for ddl in CLICKHOUSE_DDL:
            client.execute(ddl)
    except Exception as exc:
        log.warning("ClickHouse unavailable at %s:%s, event log disabled: %s", host, port, exc)
        return ClickHouseLogger(client=None)
    return ClickHouseLogger(client=client, database=database)
