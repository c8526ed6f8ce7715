"""
Container runtime contract.

The session controller talks to the container control plane only through
:class:`RuntimeClient`.  Concrete implementations:

  DockerRuntime — Docker Engine API via the ``docker`` SDK

An attached container is represented by :class:`AttachedStreams`: an
:class:`OutputSource` yielding tagged output chunks and an
:class:`InputSink` accepting stdin bytes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from dockrelay.core.session.models import AttachFlags, SessionSpec


class StreamKind(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputChunk:
    stream: StreamKind
    data: bytes


class OutputSource(ABC):
    """
    Lazy sequence of output chunks from an attached container.

    Iteration ends when the runtime closes the stream, normally because the
    container process exited.  Read failures raise RelayIOError.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[OutputChunk]: ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying stream.  Safe to call more than once."""


class InputSink(ABC):
    """Byte sink feeding the container's stdin."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Send *data* to the container.  Raises RelayIOError on failure."""

    @abstractmethod
    async def close_input(self) -> None:
        """Signal EOF on the container's stdin, keeping output open."""

    @abstractmethod
    def close(self) -> None:
        """Release the sink.  Safe to call more than once."""


@dataclass
class AttachedStreams:
    """The bidirectional channel to a running container."""

    output: OutputSource
    input: InputSink

    def close(self) -> None:
        try:
            self.input.close()
        finally:
            self.output.close()


class RuntimeClient(ABC):
    """Capabilities the session controller needs from a container runtime."""

    @abstractmethod
    async def create(self, spec: SessionSpec) -> str:
        """Create a container and return its id.  Raises ProvisionError."""

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created container.  Raises StartError."""

    @abstractmethod
    async def attach(self, container_id: str, flags: AttachFlags) -> AttachedStreams:
        """Attach to the container's streams in live mode.  Raises AttachError."""

    @abstractmethod
    async def remove(self, container_id: str, *, force: bool = True) -> None:
        """
        Remove the container.

        Raises ContainerNotFoundError when it is already gone and RemoveError
        for any other failure.
        """

    @abstractmethod
    async def wait(self, container_id: str, *, timeout: float | None = None) -> int:
        """Block until the container stops and return its exit status."""

    async def version(self) -> dict[str, Any]:
        """Return runtime version details for diagnostics."""
        return {}

    def close(self) -> None:  # noqa: B027
        """Release the control-plane connection."""
