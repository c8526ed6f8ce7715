"""
dockrelay CLI entry point.

Commands:
  dockrelay run IMAGE [COMMAND]...  — run an interactive, throwaway container
  dockrelay version [--runtime]     — show version (and the Docker engine's)
"""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console

from dockrelay import __version__

# stdout carries container output; everything dockrelay says goes to stderr
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="dockrelay %(version)s")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR).")
@click.option("--log-json", is_flag=True, default=False, help="Emit JSON log lines.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a config.toml (default: platform config dir).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, log_json: bool, config_path: str | None) -> None:
    """dockrelay — interactive sessions in ephemeral containers."""
    from dockrelay.core.config import load_config
    from dockrelay.core.constants import ExitCode
    from dockrelay.core.exceptions import ConfigError
    from dockrelay.core.logging import configure_logging

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    configure_logging(
        level=log_level or config.logging.level,
        json_output=log_json or config.logging.format == "json",
    )
    ctx.obj = config


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("image")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("-w", "--workdir", default=None, help="Working directory inside the container.")
@click.option("-e", "--env", "env", multiple=True, help="Environment variable KEY=VALUE.")
@click.option("-v", "--volume", "volumes", multiple=True, help="Bind mount HOST:CONTAINER.")
@click.option("--tty/--no-tty", "-t/-T", default=None, help="Allocate a TTY in the container.")
@click.option("--no-stdin", is_flag=True, default=False, help="Do not forward local input.")
@click.pass_obj
def run(
    config: object,
    image: str,
    command: tuple[str, ...],
    workdir: str | None,
    env: tuple[str, ...],
    volumes: tuple[str, ...],
    tty: bool | None,
    no_stdin: bool,
) -> None:
    """Run COMMAND in a fresh container from IMAGE, then remove it."""
    from dockrelay.cli._run import cmd_run

    cmd_run(
        config=config,
        image=image,
        command=list(command),
        workdir=workdir,
        env=env,
        volumes=volumes,
        tty=tty,
        stdin=not no_stdin,
        console=err_console,
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--runtime", "show_runtime", is_flag=True, default=False, help="Also query Docker.")
@click.pass_obj
def version(config: object, show_runtime: bool) -> None:
    """Show the dockrelay version."""
    from dockrelay.core.constants import ExitCode
    from dockrelay.core.exceptions import ProvisionError
    from dockrelay.runtime.docker import DockerRuntime

    click.echo(f"dockrelay {__version__}")
    if not show_runtime:
        return

    try:
        runtime = DockerRuntime.from_config(config.runtime)
        try:
            info = asyncio.run(runtime.version())
        finally:
            runtime.close()
    except ProvisionError as exc:
        err_console.print(f"[red]Docker unavailable:[/red] {exc}")
        sys.exit(ExitCode.RUNTIME_ERROR)

    click.echo(f"docker {info.get('Version', 'unknown')} (API {info.get('ApiVersion', '?')})")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
