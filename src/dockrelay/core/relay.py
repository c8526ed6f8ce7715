"""
Byte relays between the local terminal and an attached container.

  OutputRelay — container stdout/stderr → terminal.  Runs in the session
                coroutine; its end is the signal that the session is over.
  InputRelay  — terminal stdin → container.  Runs as a task owned by the
                session and is stopped explicitly when the session leaves
                running/draining.

The two directions progress independently: blocking reads happen in
executor threads, so a user who types nothing never holds up output and a
silent container never holds up typing.
"""

from __future__ import annotations

import asyncio

import structlog

from dockrelay.core.constants import POLL_INTERVAL_S, READ_CHUNK_BYTES
from dockrelay.core.exceptions import RelayIOError
from dockrelay.os.tty.terminal import Terminal
from dockrelay.runtime.base import InputSink, OutputSource

logger = structlog.get_logger()


class OutputRelay:
    """Write every output chunk to the terminal, in order, flushing each one."""

    def __init__(self, source: OutputSource, terminal: Terminal) -> None:
        self._source = source
        self._terminal = terminal
        self.bytes_written = 0
        self.chunks_written = 0

    async def run(self) -> int:
        """Relay until the source is exhausted.  Returns the byte count written."""
        async for chunk in self._source:
            if not chunk.data:
                continue
            try:
                self._terminal.write_output(chunk.data)
            except (OSError, ValueError) as exc:
                raise RelayIOError(f"Writing to the local terminal failed: {exc}") from exc
            self.bytes_written += len(chunk.data)
            self.chunks_written += 1
        logger.debug(
            "output_stream_closed",
            bytes=self.bytes_written,
            chunks=self.chunks_written,
        )
        return self.bytes_written


class InputRelay:
    """
    Forward terminal input to the container until told to stop.

    Each poll blocks in a worker thread for at most ``poll_interval_s``
    waiting for input, which bounds both idle CPU use and how long a stop
    request can go unnoticed.  Failed writes are dropped: the container may
    already be gone, and ending the session is the output relay's job.
    """

    def __init__(
        self,
        terminal: Terminal,
        sink: InputSink,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        chunk_size: int = READ_CHUNK_BYTES,
    ) -> None:
        self._terminal = terminal
        self._sink = sink
        self._poll_interval_s = poll_interval_s
        self._chunk_size = chunk_size
        self.polls = 0
        self.bytes_forwarded = 0

    async def run(self, stop: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        while not stop.is_set():
            self.polls += 1
            try:
                data = await loop.run_in_executor(
                    None,
                    self._terminal.read_input,
                    self._chunk_size,
                    self._poll_interval_s,
                )
            except (OSError, ValueError) as exc:
                logger.debug("input_read_failed", error=str(exc))
                await asyncio.sleep(self._poll_interval_s)
                continue

            if data is None:
                continue

            if data == b"":
                await self._end_of_input()
                return

            if stop.is_set():
                return

            try:
                await self._sink.write(data)
            except (RelayIOError, OSError) as exc:
                logger.debug("input_forward_failed", error=str(exc), size=len(data))
                continue
            self.bytes_forwarded += len(data)

    async def _end_of_input(self) -> None:
        logger.debug("input_eof", bytes=self.bytes_forwarded)
        try:
            await self._sink.close_input()
        except (RelayIOError, OSError) as exc:
            logger.debug("input_close_failed", error=str(exc))
