"""
Raw-mode guard for the local terminal.

Raw mode hands every keystroke (arrows, Ctrl-C, Ctrl-D ...) to the reading
process unbuffered and unechoed, so the container sees exactly what the
user types.  The terminal is a single physical device, so at most one guard
may be live per process; a second acquisition fails instead of stacking
mode changes.

Usage::

    with raw_mode(terminal):
        ...  # relays run here; the previous mode is restored on any exit
"""

from __future__ import annotations

import termios
import threading
import tty
from types import TracebackType
from typing import Any

import structlog

from dockrelay.core.exceptions import TerminalModeError
from dockrelay.os.tty.terminal import Terminal

logger = structlog.get_logger()

_guard_lock = threading.Lock()


def raw_mode_active() -> bool:
    """Return True while some RawModeGuard holds the terminal."""
    return _guard_lock.locked()


class RawModeGuard:
    """
    Scoped exclusive raw-mode control of a terminal.

    Non-TTY input (pipes, files, test doubles) skips the termios calls but
    still takes the process-wide lock, so exclusivity does not depend on
    where stdin points.
    """

    def __init__(self, terminal: Terminal) -> None:
        self._terminal = terminal
        self._fd: int | None = None
        self._saved: list[Any] | None = None
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if not _guard_lock.acquire(blocking=False):
            raise TerminalModeError("The terminal is already in raw mode for another session")
        try:
            if self._terminal.isatty():
                fd = self._terminal.input_fd()
                self._saved = termios.tcgetattr(fd)
                tty.setraw(fd)
                self._fd = fd
        except Exception as exc:
            self._abandon()
            raise TerminalModeError(f"Cannot switch the terminal to raw mode: {exc}") from exc
        except BaseException:
            self._abandon()
            raise
        self._held = True
        logger.debug("raw_mode_acquired", tty=self._fd is not None)

    def _abandon(self) -> None:
        """Drop a half-finished acquisition; the lock is free afterwards."""
        self._saved = None
        self._fd = None
        _guard_lock.release()

    def release(self) -> None:
        if not self._held:
            return
        try:
            if self._fd is not None and self._saved is not None:
                termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
        except (termios.error, OSError) as exc:
            logger.error("raw_mode_restore_failed", error=str(exc))
        finally:
            self._saved = None
            self._fd = None
            self._held = False
            _guard_lock.release()
        logger.debug("raw_mode_released")

    def __enter__(self) -> RawModeGuard:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def raw_mode(terminal: Terminal) -> RawModeGuard:
    """Return a guard that puts *terminal* in raw mode for a ``with`` block."""
    return RawModeGuard(terminal)
