from __future__ import annotations

import os
import platform
from pathlib import Path


def _candidate_dirs(app_name: str) -> list[Path]:
    system = platform.system()
    if system == "Windows":
        # machine-local app data first, then roaming
        roots = [os.environ.get(k) for k in ("LOCALAPPDATA", "APPDATA", "PROGRAMDATA")]
        return [Path(r) / app_name for r in roots if r]
    if system == "Darwin":
        return [Path.home() / "Library" / "Application Support" / app_name]
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return [Path(xdg) / app_name]
    return [Path.home() / ".local" / "share" / app_name]


def default_data_dir(app_name: str = "TwitchBridge") -> Path:
    """Return a writable per-platform data directory for the application.

    Priority:
      - $TWITCHBRIDGE_DATA_DIR when set
      - Windows: %LOCALAPPDATA% (fallback %APPDATA%, then %PROGRAMDATA%)
      - macOS: ~/Library/Application Support/{app_name}
      - Linux/Unix: $XDG_DATA_HOME or ~/.local/share/{app_name}
      - Fallback: current working directory
    The directory is created if it doesn't exist.
    """
    candidates = _candidate_dirs(app_name)
    env_override = os.environ.get("TWITCHBRIDGE_DATA_DIR")
    if env_override:
        candidates.insert(0, Path(env_override).expanduser())

    for p in candidates:
        try:
            p.mkdir(parents=True, exist_ok=True)
            return p
        except OSError:
            continue

    p = Path.cwd() / app_name
    p.mkdir(parents=True, exist_ok=True)
    return p


def default_cache_dir(app_name: str = "TwitchBridge") -> Path:
    """Return the default directory holding cached user tokens.

    `Config.cache_dir` (TWITCHBRIDGE_CACHE_DIR) takes precedence; this is
    only consulted when it is unset.
    """
    return default_data_dir(app_name) / "tokens"
