"""
Structured logging configuration for dockrelay.

Uses structlog for key-value log output. Session code binds context
(session_id, container_id) once and every later event carries it.

Setup:
    Call ``configure_logging()`` once at process startup.  Every module then
    uses::

        import structlog
        logger = structlog.get_logger()

Logs always go to stderr.  stdout belongs to the container: anything written
there while a session runs lands in the middle of the relayed output.
"""

from __future__ import annotations

import logging
import sys

import structlog

from dockrelay.os.tty.raw_mode import raw_mode_active


class RawAwareStreamHandler(logging.StreamHandler):
    """
    stderr handler that keeps log lines readable while a session holds the
    terminal in raw mode.

    ``tty.setraw`` turns off output post-processing, so a bare LF moves the
    cursor down without returning it to column 0.  While a raw-mode guard is
    held every line break is written as CRLF.
    """

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if raw_mode_active():
            text = text.replace("\r\n", "\n").replace("\n", "\r\n")
        return text

    def emit(self, record: logging.LogRecord) -> None:
        # handle() holds the handler lock around emit()
        self.terminator = "\r\n" if raw_mode_active() else "\n"
        super().emit(record)


def configure_logging(
    *,
    level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """
    Configure structlog + stdlib logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, emit JSON lines instead of coloured console output.

    Calling it again reuses the existing stderr handler, replacing its level
    and renderer; handlers are not duplicated.
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr is not None and sys.stderr.isatty(),
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    handler = next((h for h in root.handlers if isinstance(h, RawAwareStreamHandler)), None)
    if handler is None:
        handler = RawAwareStreamHandler(sys.stderr)
        root.addHandler(handler)
    handler.setFormatter(formatter)

    root.setLevel(log_level)

    # The Docker SDK logs every HTTP round trip at DEBUG
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
