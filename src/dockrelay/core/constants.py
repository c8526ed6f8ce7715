"""dockrelay constants: filesystem layout, relay timings, and exit codes."""

from __future__ import annotations

import os
import sys
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    RUNTIME_ERROR = 4
    INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_config_dir() -> Path:
    """
    Return the platform-appropriate dockrelay config directory.

    macOS : ~/Library/Application Support/dockrelay
    Linux : ~/.config/dockrelay  (or $XDG_CONFIG_HOME/dockrelay)
    Other : ~/.dockrelay
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "dockrelay"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "dockrelay"
    return Path.home() / ".dockrelay"


CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# Relay timings and limits
# ---------------------------------------------------------------------------

POLL_INTERVAL_S = 0.05  # max seconds the input relay blocks waiting for a keystroke
READ_CHUNK_BYTES = 1024  # max bytes read from the local terminal per poll
RUNTIME_TIMEOUT_SECONDS = 60  # control-plane request timeout
WAIT_TIMEOUT_SECONDS = 10  # exit-status lookup after the output stream closes

# Label stamped on every container so stray ones can be found by hand
SESSION_LABEL = "dockrelay.session"
