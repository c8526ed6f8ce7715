"""
dockrelay — run an ephemeral, interactive container from your terminal.

dockrelay creates a container, attaches to its standard streams, relays the
local terminal to it in raw mode and always removes the container when the
session ends, however it ends.

Package layout (src/dockrelay/):
  core/       — session lifecycle, relays, config, logging, exceptions
  runtime/    — container runtime contract and the Docker implementation
  os/tty/     — local terminal adapter and the raw-mode guard
  cli/        — Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
