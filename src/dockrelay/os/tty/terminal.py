"""
Local terminal adapter.

Wraps the process's stdin/stdout as raw byte streams for the relays:

  read_input   — wait up to *timeout* for keystrokes, then read what is there
  write_output — write a chunk and flush it immediately

Reads go straight to the file descriptor with ``os.read`` so nothing sits
in Python's text buffering while the terminal is in raw mode.
"""

from __future__ import annotations

import errno
import os
import select
import sys
from typing import BinaryIO, Protocol, TextIO


class Terminal(Protocol):
    """What the relays and the raw-mode guard need from a terminal."""

    def isatty(self) -> bool: ...

    def input_fd(self) -> int: ...

    def read_input(self, size: int, timeout: float) -> bytes | None: ...

    def write_output(self, data: bytes) -> None: ...


class LocalTerminal:
    """
    The controlling terminal of this process (or whatever stdin/stdout are).

    Python sets ``sys.stdin`` / ``sys.stdout`` to None when fd 0 / fd 1 were
    closed at startup.  A missing stdin is not a TTY and reads as end of
    input; a missing stdout fails each write with EBADF.
    """

    def __init__(
        self,
        stdin: TextIO | BinaryIO | None = None,
        stdout: BinaryIO | None = None,
    ) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        if stdout is None and sys.stdout is not None:
            stdout = sys.stdout.buffer
        self._stdout = stdout

    def isatty(self) -> bool:
        if self._stdin is None:
            return False
        try:
            return self._stdin.isatty()
        except ValueError:  # closed stream
            return False

    def input_fd(self) -> int:
        if self._stdin is None:
            raise OSError(errno.EBADF, "stdin is not available")
        return self._stdin.fileno()

    def read_input(self, size: int, timeout: float) -> bytes | None:
        """
        Read up to *size* bytes, waiting at most *timeout* seconds.

        Returns None if nothing arrived in time and ``b""`` at end of input.
        Blocks the calling thread; run it in an executor.
        """
        if self._stdin is None:
            return b""
        fd = self.input_fd()
        readable, _, _ = select.select([fd], [], [], timeout)
        if not readable:
            return None
        return os.read(fd, size)

    def write_output(self, data: bytes) -> None:
        if self._stdout is None:
            raise OSError(errno.EBADF, "stdout is not available")
        self._stdout.write(data)
        self._stdout.flush()
