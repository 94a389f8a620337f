from __future__ import annotations

import json
import logging
import math
import os
import stat
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from .paths import default_cache_dir

logger = logging.getLogger(__name__)

FILE_PREFIX = "user-"
FILE_SUFFIX = ".json"


@dataclass(frozen=True)
class Credential:
    """Token bundle for one Twitch user. Replaced wholesale, never mutated."""

    access_token: str
    refresh_token: Optional[str] = None
    # lifetime in seconds as reported by Twitch; None means unknown/no expiry
    expires_in: Optional[int] = None
    obtained_at: float = 0.0
    scopes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def expires_at(self) -> Optional[float]:
        if self.expires_in is None:
            return None
        return self.obtained_at + self.expires_in

    def is_expired(self, now: Optional[float] = None, skew: float = 30.0) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now if now is not None else time.time()) >= expires_at - skew

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "obtained_at": self.obtained_at,
            "scopes": list(self.scopes),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Credential":
        """Parse the stored JSON form. Raises ValueError on any malformed shape."""
        if not isinstance(data, dict):
            raise ValueError("credential must be a JSON object")
        access = data.get("access_token")
        if not isinstance(access, str) or not access:
            raise ValueError("access_token missing")
        refresh = data.get("refresh_token")
        if refresh is not None and not isinstance(refresh, str):
            raise ValueError("refresh_token must be a string")
        expires_in = data.get("expires_in")
        scopes = data.get("scopes") or []
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise ValueError("scopes must be a list of strings")
        try:
            obtained_at = float(data.get("obtained_at") or 0.0)
            expires = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"invalid credential field: {exc}") from exc
        if not math.isfinite(obtained_at):
            raise ValueError("obtained_at must be finite")
        return cls(
            access_token=access,
            refresh_token=refresh,
            expires_in=expires,
            obtained_at=obtained_at,
            scopes=tuple(scopes),
        )


@dataclass(frozen=True)
class CorruptEntry:
    """Result of reading a cache file that exists but cannot be parsed."""

    user_id: str
    path: Path
    reason: str


class TokenStore:
    """File-per-user credential cache.

    Layout:
      <cache_dir>/user-<user_id>.json   one serialized Credential per user

    Writes are atomic and flushed to disk before `save` returns. Files are
    chmod 0600. Unreadable entries are removed when read (`load`/`list_all`).
    """

    def __init__(self, cache_dir: Optional[Path] = None) -> None:
        self._dir = Path(cache_dir) if cache_dir is not None else default_cache_dir()
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def cache_dir(self) -> Path:
        return self._dir

    def _path(self, user_id: str) -> Path:
        if not user_id or "/" in user_id or "\\" in user_id or user_id in (".", ".."):
            raise ValueError(f"invalid user id: {user_id!r}")
        return self._dir / f"{FILE_PREFIX}{user_id}{FILE_SUFFIX}"

    def save(self, user_id: str, credential: Credential) -> None:
        path = self._path(user_id)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._dir, prefix=f".{path.stem}.", suffix=".tmp"
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(credential.to_dict(), fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.info("Saved token cache for user %s", user_id)

    def read(self, user_id: str) -> Credential | CorruptEntry | None:
        """Return the stored credential, a CorruptEntry, or None when absent."""
        path = self._path(user_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            return Credential.from_dict(json.loads(raw.decode("utf-8")))
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            return CorruptEntry(user_id=user_id, path=path, reason=str(exc))

    def _heal(self, entry: CorruptEntry) -> None:
        logger.warning(
            "Removing corrupt token cache for user %s: %s", entry.user_id, entry.reason
        )
        entry.path.unlink(missing_ok=True)

    def load(self, user_id: str) -> Optional[Credential]:
        result = self.read(user_id)
        if isinstance(result, CorruptEntry):
            self._heal(result)
            return None
        return result

    def remove(self, user_id: str) -> bool:
        path = self._path(user_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Removed token cache for user %s", user_id)
        return True

    def list_all(self) -> Iterator[Tuple[str, Credential]]:
        """Yield (user_id, credential) for every cached user.

        The directory listing is taken when this is called; the returned
        generator is single-use.
        """
        names = sorted(p.name for p in self._dir.iterdir() if p.is_file())
        return self._iter_entries(names)

    def _iter_entries(self, names: list[str]) -> Iterator[Tuple[str, Credential]]:
        for name in names:
            if not (name.startswith(FILE_PREFIX) and name.endswith(FILE_SUFFIX)):
                continue
            user_id = name[len(FILE_PREFIX) : -len(FILE_SUFFIX)]
            if not user_id:
                continue
            credential = self.load(user_id)
            if credential is not None:
                yield user_id, credential
