"""
Session lifecycle controller.

Drives one container session from provisioning to removal:

  create ──▶ start ──▶ attach ──▶ [raw mode: input relay ∥ output relay] ──▶ remove

Teardown rules:
  - nothing to remove if create failed
  - once a container id exists, ``remove(force=True)`` runs exactly once on
    every exit path: normal end, start/attach failure, relay I/O error,
    cancellation (SIGINT via asyncio.run, SIGTERM/SIGHUP via the handlers
    installed here)
  - a removal failure never replaces the error that triggered teardown; it
    is logged and attached to that error's ``suppressed`` list
  - the terminal leaves raw mode before teardown starts
  - an in-flight create or remove is awaited to completion through any
    further cancellations, which are re-raised afterwards
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager

import structlog

from dockrelay.core.config import RelayConfig
from dockrelay.core.constants import SESSION_LABEL, WAIT_TIMEOUT_SECONDS
from dockrelay.core.exceptions import (
    ContainerNotFoundError,
    RemoveError,
    SessionError,
)
from dockrelay.core.relay import InputRelay, OutputRelay
from dockrelay.core.session.models import Session, SessionOutcome, SessionSpec
from dockrelay.os.tty.raw_mode import raw_mode
from dockrelay.os.tty.terminal import LocalTerminal, Terminal
from dockrelay.runtime.base import AttachedStreams, RuntimeClient

logger = structlog.get_logger()

RawModeFactory = Callable[[Terminal], AbstractContextManager[object]]

_INTERRUPT_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def _outcome_for(exc: BaseException | None) -> SessionOutcome:
    if exc is None:
        return SessionOutcome.COMPLETED
    if isinstance(exc, asyncio.CancelledError | KeyboardInterrupt):
        return SessionOutcome.INTERRUPTED
    return SessionOutcome.FAILED


async def _settle(fut: asyncio.Future[object]) -> bool:
    """
    Wait for *fut* to finish even if the caller is cancelled meanwhile.

    Returns True when at least one cancellation arrived while waiting; the
    caller decides when to re-raise it.
    """
    cancelled = False
    while not fut.done():
        try:
            # asyncio.wait never cancels or raises from fut itself
            await asyncio.wait({fut})
        except asyncio.CancelledError:
            cancelled = True
    return cancelled


class SessionController:
    """
    Run one ephemeral container session end to end.

    Usage::

        controller = SessionController(DockerRuntime.from_config(cfg.runtime))
        session = await controller.run(SessionSpec(image="alpine", command=["sh"]))
    """

    def __init__(
        self,
        runtime: RuntimeClient,
        terminal: Terminal | None = None,
        *,
        relay: RelayConfig | None = None,
        raw_mode: RawModeFactory = raw_mode,
        handle_signals: bool = True,
    ) -> None:
        self._runtime = runtime
        self._terminal: Terminal = terminal if terminal is not None else LocalTerminal()
        self._relay_config = relay or RelayConfig()
        self._raw_mode = raw_mode
        self._handle_signals = handle_signals

    async def run(self, spec: SessionSpec) -> Session:
        """Run *spec* to completion and return the ended session."""
        session = Session(spec=spec)
        log = logger.bind(session_id=session.short_id())
        log.info("session_starting", image=spec.image, command=spec.command)

        with self._signal_handlers():
            container_id, interrupted = await self._provision(session, log)
            session.bind_container(container_id)
            log = log.bind(container_id=container_id[:12])

            primary: BaseException | None = None
            try:
                if interrupted:
                    raise asyncio.CancelledError()
                await self._start_and_relay(session, container_id, log)
            except BaseException as exc:
                primary = exc
                self._log_failure(exc, log)
                raise
            finally:
                ended_by = primary
                try:
                    await self._teardown(session, container_id, primary, log)
                except BaseException as exc:
                    ended_by = ended_by or exc
                    raise
                finally:
                    session.mark_ended(_outcome_for(ended_by))
                    log.info(
                        "session_ended", outcome=str(session.outcome), exit_code=session.exit_code
                    )

        return session

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _provision(self, session: Session, log: structlog.stdlib.BoundLogger) -> tuple[str, bool]:
        """Create the container.  Returns (container_id, interrupted_meanwhile)."""
        labels = {**session.spec.labels, SESSION_LABEL: session.session_id}
        spec = session.spec.model_copy(update={"labels": labels})
        creating = asyncio.ensure_future(self._runtime.create(spec))
        try:
            return await asyncio.shield(creating), False
        except asyncio.CancelledError:
            # An in-flight create still lands; wait for it so the container is removed.
            await _settle(creating)
            if creating.cancelled() or creating.exception() is not None:
                session.mark_ended(SessionOutcome.INTERRUPTED)
                raise
            log.warning("session_interrupted_during_create")
            return creating.result(), True
        except BaseException as exc:
            session.mark_ended(_outcome_for(exc))
            self._log_failure(exc, log)
            raise

    async def _start_and_relay(
        self,
        session: Session,
        container_id: str,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        await self._runtime.start(container_id)
        streams = await self._runtime.attach(container_id, session.spec.attach)
        session.mark_running()
        log.info("session_running")
        try:
            with self._raw_mode(self._terminal):
                await self._relay(session, streams)
        finally:
            streams.close()
        session.mark_draining()
        session.exit_code = await self._exit_status(container_id, log)

    async def _relay(self, session: Session, streams: AttachedStreams) -> int:
        """Run both relays; returns when the container's output stream ends."""
        stop = asyncio.Event()
        input_task: asyncio.Task[None] | None = None
        if session.spec.attach.stdin:
            input_relay = InputRelay(
                self._terminal,
                streams.input,
                poll_interval_s=self._relay_config.poll_interval_s,
                chunk_size=self._relay_config.read_chunk_bytes,
            )
            input_task = asyncio.create_task(
                input_relay.run(stop), name=f"input-relay-{session.short_id()}"
            )
        try:
            return await OutputRelay(streams.output, self._terminal).run()
        finally:
            stop.set()
            if input_task is not None:
                input_task.cancel()
                (result,) = await asyncio.gather(input_task, return_exceptions=True)
                if isinstance(result, Exception):
                    logger.error("input_relay_crashed", error=str(result))

    async def _exit_status(self, container_id: str, log: structlog.stdlib.BoundLogger) -> int | None:
        try:
            code = await self._runtime.wait(container_id, timeout=WAIT_TIMEOUT_SECONDS)
        except SessionError as exc:
            log.warning("exit_status_unavailable", error=str(exc))
            return None
        log.info("container_exited", exit_code=code)
        return code

    async def _teardown(
        self,
        session: Session,
        container_id: str,
        primary: BaseException | None,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        """
        Force-remove the container without letting a failure mask *primary*.

        Removal runs to completion even if the session is cancelled again
        meanwhile; that cancellation is re-raised once removal is done.
        """
        removal = asyncio.ensure_future(self._runtime.remove(container_id, force=True))
        interrupted = await _settle(removal)
        try:
            removal.result()
        except ContainerNotFoundError:
            log.info("container_already_removed")
            session.mark_removed()
        except Exception as exc:
            error = (
                exc
                if isinstance(exc, RemoveError)
                else RemoveError(str(exc), container_id=container_id)
            )
            if primary is None and not interrupted:
                if error is exc:
                    raise
                raise error from exc
            log.error("container_remove_failed", error=str(error))
            if isinstance(primary, SessionError):
                primary.add_suppressed(error)
        else:
            session.mark_removed()

        if interrupted and not isinstance(primary, asyncio.CancelledError):
            log.warning("session_interrupted_during_teardown")
            raise asyncio.CancelledError()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _log_failure(exc: BaseException, log: structlog.stdlib.BoundLogger) -> None:
        if isinstance(exc, asyncio.CancelledError | KeyboardInterrupt):
            log.warning("session_interrupted")
        else:
            log.error("session_failed", error=str(exc), error_type=type(exc).__name__)

    @contextlib.contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        """Turn SIGTERM/SIGHUP into cancellation of the session task."""
        installed: list[signal.Signals] = []
        if self._handle_signals:
            loop = asyncio.get_running_loop()
            task = asyncio.current_task()
            for sig in _INTERRUPT_SIGNALS:
                try:
                    loop.add_signal_handler(sig, self._interrupt, task, sig)
                except (NotImplementedError, RuntimeError, ValueError):
                    continue  # not the main thread, or no signal support
                installed.append(sig)
        try:
            yield
        finally:
            loop_ = asyncio.get_running_loop()
            for sig in installed:
                loop_.remove_signal_handler(sig)

    @staticmethod
    def _interrupt(task: asyncio.Task[object] | None, sig: signal.Signals) -> None:
        logger.warning("session_signal_received", signal=sig.name)
        if task is not None:
            task.cancel()


async def run_session(
    spec: SessionSpec,
    runtime: RuntimeClient,
    *,
    terminal: Terminal | None = None,
    relay: RelayConfig | None = None,
) -> Session:
    """Run one session with the default terminal and raw-mode guard."""
    return await SessionController(runtime, terminal, relay=relay).run(spec)
