"""Container runtime contract and implementations."""

from __future__ import annotations

from dockrelay.runtime.base import (
    AttachedStreams,
    InputSink,
    OutputChunk,
    OutputSource,
    RuntimeClient,
    StreamKind,
)

__all__ = [
    "AttachedStreams",
    "InputSink",
    "OutputChunk",
    "OutputSource",
    "RuntimeClient",
    "StreamKind",
]
