"""Local terminal access — raw byte I/O and the process-wide raw-mode guard."""

from __future__ import annotations

from dockrelay.os.tty.raw_mode import RawModeGuard, raw_mode, raw_mode_active
from dockrelay.os.tty.terminal import LocalTerminal, Terminal

__all__ = ["LocalTerminal", "RawModeGuard", "Terminal", "raw_mode", "raw_mode_active"]
