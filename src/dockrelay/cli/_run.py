"""dockrelay run — run one interactive session in a throwaway container."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from rich.console import Console

from dockrelay.core.constants import ExitCode

if TYPE_CHECKING:
    from dockrelay.core.config import DockRelayConfig
    from dockrelay.core.session.models import Session, SessionSpec
    from dockrelay.runtime.base import RuntimeClient


def parse_env(pairs: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` pairs; a bare ``KEY`` copies the host's value."""
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not key:
            raise ValueError(f"Invalid environment entry {pair!r}: expected KEY=VALUE")
        if not sep:
            if key not in os.environ:
                raise ValueError(f"Environment variable {key!r} is not set on the host")
            value = os.environ[key]
        env[key] = value
    return env


def parse_volumes(specs: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Parse ``HOST:CONTAINER`` bind mounts; host paths are made absolute."""
    mounts: dict[str, str] = {}
    for spec in specs:
        host, sep, target = spec.rpartition(":")
        if not sep or not host or not target:
            raise ValueError(f"Invalid volume {spec!r}: expected HOST:CONTAINER")
        if not target.startswith("/"):
            raise ValueError(f"Invalid volume {spec!r}: container path must be absolute")
        mounts[str(Path(host).expanduser().resolve())] = target
    return mounts


def cmd_run(
    config: object,
    image: str,
    command: list[str],
    console: Console,
    workdir: str | None = None,
    env: tuple[str, ...] = (),
    volumes: tuple[str, ...] = (),
    tty: bool | None = None,
    stdin: bool = True,
) -> None:
    """Build the session spec, run it, and exit with the container's status."""
    from dockrelay.core.exceptions import ProvisionError, SessionError
    from dockrelay.core.session.models import AttachFlags, SessionSpec
    from dockrelay.runtime.docker import DockerRuntime

    try:
        spec = SessionSpec(
            image=image,
            command=command,
            working_dir=workdir if workdir is not None else config.session.working_dir,
            attach=AttachFlags(
                stdin=stdin,
                open_stdin=stdin,
                tty=config.session.tty if tty is None else tty,
            ),
            env=parse_env(env),
            mounts=parse_volumes(volumes),
        )
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Invalid session:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    try:
        runtime = DockerRuntime.from_config(config.runtime)
    except ProvisionError as exc:
        console.print(f"[red]Docker unavailable:[/red] {exc}")
        sys.exit(ExitCode.RUNTIME_ERROR)

    try:
        session = asyncio.run(_run_async(spec, runtime, config))
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(ExitCode.INTERRUPTED)
    except ProvisionError as exc:
        console.print(f"[red]Could not create container:[/red] {exc}")
        sys.exit(ExitCode.RUNTIME_ERROR)
    except SessionError as exc:
        console.print(f"\n[red]Session failed:[/red] {exc}")
        sys.exit(ExitCode.ERROR)
    finally:
        runtime.close()

    sys.exit(session.exit_code if session.exit_code is not None else ExitCode.SUCCESS)


async def _run_async(spec: SessionSpec, runtime: RuntimeClient, config: DockRelayConfig) -> Session:
    from dockrelay.core.session.controller import run_session

    return await run_session(spec, runtime, relay=config.relay)
