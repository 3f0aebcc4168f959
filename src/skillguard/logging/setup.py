"""
Structured logging setup.

stdout belongs to the host: it only ever carries the hook decision JSON.
Logs therefore go to two independent pipelines:
1. File (JSON) — if config.file is set. Captures everything (DEBUG+).
2. Console (stderr) — level controlled by -v / logging.level.

Default behaviour (no -v): only warnings and errors reach stderr, so a
healthy hook stays silent. -v adds INFO, -vv adds DEBUG, --quiet silences
the console.
"""

import logging
import sys
from pathlib import Path

import structlog

from ..config.schema import LoggingConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(config: LoggingConfig, quiet: bool = False) -> None:
    """Configure structlog and the stdlib handlers.

    Args:
        config: Logging configuration (level, file, verbose)
        quiet: If True, disables the console handler
    """
    logging.root.handlers.clear()
    structlog.reset_defaults()

    # Root logger captures everything; handlers filter by level
    logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=[])

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # ── Pipeline 1: JSON file ─────────────────────────────────────────────
    if config.file:
        file_path = Path(config.file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(file_path), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=shared_processors,
            )
        )
        logging.root.addHandler(file_handler)

    # ── Pipeline 2: stderr console ────────────────────────────────────────
    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(_console_level(config))
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
                foreign_pre_chain=shared_processors,
            )
        )
        logging.root.addHandler(console_handler)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _console_level(config: LoggingConfig) -> int:
    """Console level: the most verbose of logging.level and the -v count.

    No -v   → logging.level (WARNING by default)
    -v      → INFO
    -vv+    → DEBUG
    """
    verbose_levels = {0: logging.CRITICAL + 1, 1: logging.INFO}
    from_verbose = verbose_levels.get(config.verbose, logging.DEBUG)
    return min(_LEVELS[config.level], from_verbose)

