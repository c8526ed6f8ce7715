"""
Docker runtime — the RuntimeClient contract over the Docker Engine API.

Uses the low-level ``docker.APIClient`` because the session needs the raw
attach socket (stdin in, multiplexed stdout/stderr out), which the
high-level container objects do not expose for writing.

All SDK calls block, so each one runs in a worker thread via
``asyncio.to_thread`` and the event loop stays free for the relays.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
import threading
from collections.abc import AsyncIterator, Iterator
from typing import Any

import docker
import requests
import structlog
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.utils.socket import STDERR, SocketError, frames_iter

from dockrelay.core.config import RuntimeConfig
from dockrelay.core.exceptions import (
    AttachError,
    ContainerNotFoundError,
    ProvisionError,
    RelayIOError,
    RemoveError,
    SessionError,
    StartError,
)
from dockrelay.core.session.models import AttachFlags, SessionSpec
from dockrelay.runtime.base import (
    AttachedStreams,
    InputSink,
    OutputChunk,
    OutputSource,
    RuntimeClient,
    StreamKind,
)

logger = structlog.get_logger()

# Failures that mean "the control plane said no" or "the control plane is unreachable"
_RUNTIME_ERRORS = (DockerException, requests.exceptions.RequestException)


# ---------------------------------------------------------------------------
# Attach socket
# ---------------------------------------------------------------------------


class _AttachSocket:
    """The hijacked attach connection, shared by the output source and input sink."""

    def __init__(self, sock: Any) -> None:
        self._sock = sock
        # SocketIO wraps the real socket; npipe and ssh sockets are used directly
        self._raw = getattr(sock, "_sock", sock)
        self._lock = threading.Lock()
        self.closed = False

    @property
    def stream(self) -> Any:
        return self._sock

    def sendall(self, data: bytes) -> None:
        self._raw.sendall(data)

    def shutdown_write(self) -> None:
        self._raw.shutdown(socket.SHUT_WR)

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
        with contextlib.suppress(OSError):
            self._sock.close()
        with contextlib.suppress(OSError):
            self._raw.close()


class DockerOutputSource(OutputSource):
    """Demultiplexed stdout/stderr frames read from the attach socket."""

    def __init__(self, attach_socket: _AttachSocket, *, tty: bool, container_id: str) -> None:
        self._socket = attach_socket
        self._tty = tty
        self._container_id = container_id

    def _frames(self) -> Iterator[tuple[int, bytes]]:
        return frames_iter(self._socket.stream, self._tty)

    async def _iterate(self) -> AsyncIterator[OutputChunk]:
        frames = self._frames()
        while True:
            try:
                frame = await asyncio.to_thread(next, frames, None)
            except (OSError, SocketError) as exc:
                if self._socket.closed:
                    return
                raise RelayIOError(
                    f"Reading container output failed: {exc}",
                    container_id=self._container_id,
                ) from exc
            if frame is None:
                return
            stream_id, data = frame
            kind = StreamKind.STDERR if stream_id == STDERR else StreamKind.STDOUT
            yield OutputChunk(stream=kind, data=data)

    def __aiter__(self) -> AsyncIterator[OutputChunk]:
        return self._iterate()

    def close(self) -> None:
        self._socket.close()


class DockerInputSink(InputSink):
    """Writes stdin bytes straight onto the attach socket."""

    def __init__(self, attach_socket: _AttachSocket, *, container_id: str) -> None:
        self._socket = attach_socket
        self._container_id = container_id

    async def write(self, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._socket.sendall, data)
        except OSError as exc:
            raise RelayIOError(
                f"Writing to container stdin failed: {exc}",
                container_id=self._container_id,
            ) from exc

    async def close_input(self) -> None:
        try:
            await asyncio.to_thread(self._socket.shutdown_write)
        except OSError as exc:
            raise RelayIOError(
                f"Closing container stdin failed: {exc}",
                container_id=self._container_id,
            ) from exc

    def close(self) -> None:
        self._socket.close()


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class DockerRuntime(RuntimeClient):
    """
    RuntimeClient backed by a Docker Engine.

    Usage::

        runtime = DockerRuntime.from_config(config.runtime)
        container_id = await runtime.create(spec)
    """

    def __init__(self, client: docker.APIClient) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> DockerRuntime:
        """Build a runtime from config; an empty base_url honours DOCKER_HOST."""
        try:
            if config.base_url:
                client = docker.APIClient(
                    base_url=config.base_url,
                    version="auto",
                    timeout=config.timeout_seconds,
                )
            else:
                client = docker.from_env(timeout=config.timeout_seconds).api
        except _RUNTIME_ERRORS as exc:
            raise ProvisionError(f"Cannot connect to the Docker daemon: {exc}") from exc
        return cls(client)

    async def create(self, spec: SessionSpec) -> str:
        flags = spec.attach
        host_config = None
        volumes = None
        if spec.mounts:
            binds = {host: {"bind": target, "mode": "rw"} for host, target in spec.mounts.items()}
            host_config = self._client.create_host_config(binds=binds)
            volumes = list(spec.mounts.values())

        try:
            result = await asyncio.to_thread(
                self._client.create_container,
                image=spec.image,
                command=list(spec.command),
                working_dir=spec.working_dir or None,
                stdin_open=flags.open_stdin,
                detach=not (flags.stdout or flags.stderr),
                tty=flags.tty,
                environment=dict(spec.env) or None,
                labels=dict(spec.labels) or None,
                volumes=volumes,
                host_config=host_config,
            )
        except ImageNotFound as exc:
            raise ProvisionError(f"Image {spec.image!r} is not available locally: {exc}") from exc
        except _RUNTIME_ERRORS as exc:
            raise ProvisionError(f"Creating container from {spec.image!r} failed: {exc}") from exc

        container_id = result["Id"]
        for warning in result.get("Warnings") or []:
            logger.warning("container_create_warning", container_id=container_id[:12], warning=warning)
        logger.info("container_created", container_id=container_id[:12], image=spec.image)
        return container_id

    async def start(self, container_id: str) -> None:
        try:
            await asyncio.to_thread(self._client.start, container_id)
        except _RUNTIME_ERRORS as exc:
            raise StartError(
                f"Starting container {container_id[:12]} failed: {exc}",
                container_id=container_id,
            ) from exc
        logger.info("container_started", container_id=container_id[:12])

    async def attach(self, container_id: str, flags: AttachFlags) -> AttachedStreams:
        params = {
            "stdin": int(flags.stdin),
            "stdout": int(flags.stdout),
            "stderr": int(flags.stderr),
            "stream": 1,
            # Replay output produced between start and attach
            "logs": 1,
        }
        try:
            sock = await asyncio.to_thread(self._client.attach_socket, container_id, params)
        except _RUNTIME_ERRORS as exc:
            raise AttachError(
                f"Attaching to container {container_id[:12]} failed: {exc}",
                container_id=container_id,
            ) from exc

        attach_socket = _AttachSocket(sock)
        logger.info("container_attached", container_id=container_id[:12], tty=flags.tty)
        return AttachedStreams(
            output=DockerOutputSource(attach_socket, tty=flags.tty, container_id=container_id),
            input=DockerInputSink(attach_socket, container_id=container_id),
        )

    async def remove(self, container_id: str, *, force: bool = True) -> None:
        try:
            await asyncio.to_thread(self._client.remove_container, container_id, force=force)
        except NotFound as exc:
            raise ContainerNotFoundError(
                f"Container {container_id[:12]} is already gone",
                container_id=container_id,
            ) from exc
        except _RUNTIME_ERRORS as exc:
            raise RemoveError(
                f"Removing container {container_id[:12]} failed: {exc}",
                container_id=container_id,
            ) from exc
        logger.info("container_removed", container_id=container_id[:12], force=force)

    async def wait(self, container_id: str, *, timeout: float | None = None) -> int:
        try:
            result = await asyncio.to_thread(self._client.wait, container_id, timeout=timeout)
        except _RUNTIME_ERRORS as exc:
            raise SessionError(
                f"Waiting for container {container_id[:12]} failed: {exc}",
                container_id=container_id,
            ) from exc
        return int(result.get("StatusCode", -1))

    async def version(self) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._client.version)
        except _RUNTIME_ERRORS as exc:
            raise ProvisionError(f"Cannot reach the Docker daemon: {exc}") from exc

    def close(self) -> None:
        with contextlib.suppress(APIError, OSError):
            self._client.close()
