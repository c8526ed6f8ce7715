"""
Session domain models.

A Session is one create → start → attach → relay → remove cycle for a
single ephemeral container.  It owns exactly one container identifier for
its lifetime; once bound the identifier is never replaced.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dockrelay.core.exceptions import SessionError


@dataclass(frozen=True)
class AttachFlags:
    """Which standard streams the container exposes and the session attaches to."""

    stdin: bool = True
    stdout: bool = True
    stderr: bool = True
    open_stdin: bool = True
    tty: bool = False  # False → stdout/stderr arrive multiplexed


class SessionSpec(BaseModel):
    """Everything needed to provision the session's container."""

    model_config = ConfigDict(frozen=True)

    image: str
    command: list[str]
    working_dir: str = ""  # empty → image default
    attach: AttachFlags = Field(default_factory=AttachFlags)
    env: dict[str, str] = Field(default_factory=dict)
    mounts: dict[str, str] = Field(default_factory=dict)  # host path → container path
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("image must not be empty")
        return v.strip()

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        if not v or not v[0]:
            raise ValueError("command must contain at least a program name")
        return v


class SessionStatus(StrEnum):
    CREATED = "created"
    PROVISIONED = "provisioned"
    RUNNING = "running"
    DRAINING = "draining"
    REMOVED = "removed"
    ENDED = "ended"


class SessionOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


# Allowed forward moves.  Any state may jump to ENDED.
_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset({SessionStatus.PROVISIONED}),
    SessionStatus.PROVISIONED: frozenset({SessionStatus.RUNNING, SessionStatus.REMOVED}),
    SessionStatus.RUNNING: frozenset({SessionStatus.DRAINING, SessionStatus.REMOVED}),
    SessionStatus.DRAINING: frozenset({SessionStatus.REMOVED}),
    SessionStatus.REMOVED: frozenset(),
    SessionStatus.ENDED: frozenset(),
}


@dataclass
class Session:
    """One ephemeral container session."""

    spec: SessionSpec
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    container_id: str | None = None
    status: SessionStatus = SessionStatus.CREATED
    outcome: SessionOutcome | None = None
    exit_code: int | None = None
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    ended_at: str = ""

    def _move(self, target: SessionStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise SessionError(
                f"Invalid session transition {self.status} → {target}",
                container_id=self.container_id,
            )
        self.status = target

    def bind_container(self, container_id: str) -> None:
        if self.container_id is not None:
            raise SessionError(
                f"Session {self.short_id()} already owns container {self.container_id}",
                container_id=self.container_id,
            )
        self.container_id = container_id
        self._move(SessionStatus.PROVISIONED)

    def mark_running(self) -> None:
        self._move(SessionStatus.RUNNING)

    def mark_draining(self) -> None:
        self._move(SessionStatus.DRAINING)

    def mark_removed(self) -> None:
        self._move(SessionStatus.REMOVED)

    def mark_ended(self, outcome: SessionOutcome) -> None:
        if self.status == SessionStatus.ENDED:
            return
        self.status = SessionStatus.ENDED
        self.outcome = outcome
        self.ended_at = datetime.now(UTC).isoformat()

    @property
    def is_provisioned(self) -> bool:
        return self.container_id is not None

    @property
    def is_terminal(self) -> bool:
        return self.status == SessionStatus.ENDED

    def short_id(self) -> str:
        """First 8 chars of session_id for display."""
        return self.session_id[:8]
