"""dockrelay exception hierarchy."""

from __future__ import annotations


class DockRelayError(Exception):
    """Base exception for all dockrelay errors."""


class ConfigError(DockRelayError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file does not exist."""


class SessionError(DockRelayError):
    """
    Raised when a container session fails.

    Cleanup failures that happen while this error is propagating are
    attached to ``suppressed`` instead of replacing it.
    """

    def __init__(self, message: str = "", *, container_id: str | None = None) -> None:
        super().__init__(message)
        self.container_id = container_id
        self.suppressed: list[BaseException] = []

    def add_suppressed(self, exc: BaseException) -> None:
        self.suppressed.append(exc)

    def __str__(self) -> str:
        text = super().__str__()
        if self.suppressed:
            extra = "; ".join(f"{type(e).__name__}: {e}" for e in self.suppressed)
            text = f"{text} (during cleanup: {extra})"
        return text


class ProvisionError(SessionError):
    """Raised when the container cannot be created."""


class StartError(SessionError):
    """Raised when a created container fails to start."""


class AttachError(SessionError):
    """Raised when attaching to a running container's streams fails."""


class RelayIOError(SessionError):
    """Raised on a read/write failure while relaying bytes."""


class RemoveError(SessionError):
    """Raised when the container cannot be removed."""


class ContainerNotFoundError(RemoveError):
    """Raised when removal finds the container already gone."""


class TerminalModeError(SessionError):
    """Raised when raw mode cannot be acquired on the local terminal."""
