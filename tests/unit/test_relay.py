"""Unit tests for OutputRelay and InputRelay."""

from __future__ import annotations

import asyncio

import pytest

from dockrelay.core.exceptions import RelayIOError
from dockrelay.core.relay import InputRelay, OutputRelay
from tests.fakes import FakeTerminal, RecordingSink, ScriptedOutputSource

# ---------------------------------------------------------------------------
# OutputRelay
# ---------------------------------------------------------------------------


class TestOutputRelay:
    @pytest.mark.asyncio
    async def test_chunks_written_in_order(self) -> None:
        terminal = FakeTerminal()
        relay = OutputRelay(ScriptedOutputSource([b"a", b"bc", b"", b"d"]), terminal)

        written = await relay.run()

        assert bytes(terminal.output) == b"abcd"
        assert written == 4

    @pytest.mark.asyncio
    async def test_empty_chunks_are_skipped(self) -> None:
        terminal = FakeTerminal()
        relay = OutputRelay(ScriptedOutputSource([b"a", b"bc", b"", b"d"]), terminal)

        await relay.run()

        assert terminal.writes == [b"a", b"bc", b"d"]
        assert relay.chunks_written == 3

    @pytest.mark.asyncio
    async def test_empty_stream_writes_nothing(self) -> None:
        terminal = FakeTerminal()
        assert await OutputRelay(ScriptedOutputSource([]), terminal).run() == 0
        assert terminal.writes == []

    @pytest.mark.asyncio
    async def test_terminal_write_failure_raises_relay_error(self) -> None:
        relay = OutputRelay(ScriptedOutputSource([b"x"]), FakeTerminal(fail_writes=True))
        with pytest.raises(RelayIOError, match="local terminal"):
            await relay.run()

    @pytest.mark.asyncio
    async def test_source_failure_propagates(self) -> None:
        terminal = FakeTerminal()
        relay = OutputRelay(ScriptedOutputSource([b"a", b"b"], fail_after=1), terminal)

        with pytest.raises(RelayIOError):
            await relay.run()

        assert bytes(terminal.output) == b"a"


# ---------------------------------------------------------------------------
# InputRelay
# ---------------------------------------------------------------------------


async def _run_until(relay: InputRelay, condition: asyncio.Event, timeout: float = 2.0) -> None:
    stop = asyncio.Event()
    task = asyncio.create_task(relay.run(stop))
    try:
        await asyncio.wait_for(condition.wait(), timeout=timeout)
    finally:
        stop.set()
        await asyncio.wait_for(task, timeout=timeout)


class TestInputRelay:
    @pytest.mark.asyncio
    async def test_forwards_input_in_order(self) -> None:
        sink = RecordingSink()
        relay = InputRelay(FakeTerminal([b"l", b"s", b"\r", b""]), sink, poll_interval_s=0.01)

        await asyncio.wait_for(relay.run(asyncio.Event()), timeout=2)

        assert b"".join(sink.writes) == b"ls\r"
        assert relay.bytes_forwarded == 3

    @pytest.mark.asyncio
    async def test_end_of_input_closes_container_stdin(self) -> None:
        sink = RecordingSink()
        relay = InputRelay(FakeTerminal([b"exit\n", b""]), sink, poll_interval_s=0.01)

        await asyncio.wait_for(relay.run(asyncio.Event()), timeout=2)

        assert sink.input_closed
        assert not sink.closed

    @pytest.mark.asyncio
    async def test_failed_write_does_not_stop_relay(self) -> None:
        sink = RecordingSink(fail_writes=1)
        relay = InputRelay(FakeTerminal([b"a", b"b", b""]), sink, poll_interval_s=0.01)

        await asyncio.wait_for(relay.run(asyncio.Event()), timeout=2)

        assert sink.failed_writes == 1
        assert sink.writes == [b"b"]
        assert relay.bytes_forwarded == 1

    @pytest.mark.asyncio
    async def test_idle_polling_is_bounded(self) -> None:
        sink = RecordingSink()
        terminal = FakeTerminal()
        relay = InputRelay(terminal, sink, poll_interval_s=0.05)
        stop = asyncio.Event()

        task = asyncio.create_task(relay.run(stop))
        await asyncio.sleep(0.5)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        # 0.5s window at a 0.05s poll interval: roughly 10 reads, never a spin
        assert 1 <= relay.polls <= 15
        assert sink.writes == []

    @pytest.mark.asyncio
    async def test_stop_is_honoured_within_a_poll(self) -> None:
        relay = InputRelay(FakeTerminal(), RecordingSink(), poll_interval_s=0.02)
        stop = asyncio.Event()
        task = asyncio.create_task(relay.run(stop))
        await asyncio.sleep(0.05)

        stop.set()

        await asyncio.wait_for(task, timeout=0.5)
        assert task.done()

    @pytest.mark.asyncio
    async def test_input_read_after_stop_is_dropped(self) -> None:
        sink = RecordingSink()
        relay = InputRelay(FakeTerminal([b"late"]), sink, poll_interval_s=0.01)
        stop = asyncio.Event()
        stop.set()

        await relay.run(stop)

        assert relay.polls == 0
        assert sink.writes == []

    @pytest.mark.asyncio
    async def test_read_errors_are_retried(self) -> None:
        class FlakyTerminal(FakeTerminal):
            def __init__(self) -> None:
                super().__init__([b"ok", b""])
                self.failures = 0

            def read_input(self, size: int, timeout: float) -> bytes | None:
                if self.failures == 0:
                    self.failures += 1
                    raise OSError("EINTR")
                return super().read_input(size, timeout)

        sink = RecordingSink()
        relay = InputRelay(FlakyTerminal(), sink, poll_interval_s=0.01)

        await asyncio.wait_for(relay.run(asyncio.Event()), timeout=2)

        assert sink.writes == [b"ok"]
        assert sink.input_closed

    @pytest.mark.asyncio
    async def test_closed_stdin_error_does_not_end_relay(self) -> None:
        class ClosedOnceTerminal(FakeTerminal):
            def __init__(self) -> None:
                super().__init__([b"ok", b""])
                self.failures = 0

            def read_input(self, size: int, timeout: float) -> bytes | None:
                if self.failures == 0:
                    self.failures += 1
                    raise ValueError("I/O operation on closed file")
                return super().read_input(size, timeout)

        sink = RecordingSink()
        relay = InputRelay(ClosedOnceTerminal(), sink, poll_interval_s=0.01)

        await asyncio.wait_for(relay.run(asyncio.Event()), timeout=2)

        assert sink.writes == [b"ok"]
        assert sink.input_closed


# ---------------------------------------------------------------------------
# Both directions together
# ---------------------------------------------------------------------------


class TestIndependentDirections:
    @pytest.mark.asyncio
    async def test_idle_input_does_not_block_output(self) -> None:
        terminal = FakeTerminal()
        stop = asyncio.Event()
        input_task = asyncio.create_task(
            InputRelay(terminal, RecordingSink(), poll_interval_s=0.2).run(stop)
        )
        try:
            output = OutputRelay(ScriptedOutputSource([b"tick\n", b"tock\n"]), terminal)
            await asyncio.wait_for(output.run(), timeout=0.15)
        finally:
            stop.set()
            await asyncio.wait_for(input_task, timeout=1)

        assert bytes(terminal.output) == b"tick\ntock\n"

    @pytest.mark.asyncio
    async def test_silent_output_does_not_block_input(self) -> None:
        terminal = FakeTerminal([b"typed"])
        sink = RecordingSink()
        source = ScriptedOutputSource(never_ends=True)
        output_task = asyncio.create_task(OutputRelay(source, terminal).run())
        try:
            await _run_until(InputRelay(terminal, sink, poll_interval_s=0.01), sink.received)
        finally:
            output_task.cancel()
            await asyncio.gather(output_task, return_exceptions=True)

        assert sink.writes == [b"typed"]
