"""
Logging and Audit Trail

Structured logging for the import run, plus a separate record of every
repository mutation.

GUARANTEES:
===========
1. structlog and stdlib loggers share one processor pipeline
   (UTC timestamp, level, logger name), rendered as console or JSON lines
2. The audit file is independent of the console log level
3. One JSON object per attempted mutation; the file is only appended to
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional
import logging
import sys

import structlog


AUDIT_LOGGER_NAME = "importexport.audit"


def setup_logging(
    level: str = "info",
    json_output: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Route structlog and stdlib logging through one handler set.

    `log_file`, when given, receives JSON lines whatever `json_output` says.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

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

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=shared_processors,
        )
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)
    for handler in handlers:
        root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "rdflib"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class AuditLog:
    """
    Append-only JSON-lines record of repository mutations.

    Disabled, every call a no-op, when constructed without a path.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else None
        self._handler: Optional[logging.Handler] = None
        self._logger: Any = None

        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Unregistered logger: each audit file gets its own handler set
            stdlib_logger = logging.Logger(AUDIT_LOGGER_NAME, logging.INFO)
            stdlib_logger.propagate = False
            self._handler = logging.FileHandler(self._path, encoding="utf-8")
            self._handler.setFormatter(logging.Formatter("%(message)s"))
            stdlib_logger.addHandler(self._handler)

            self._logger = structlog.wrap_logger(
                stdlib_logger,
                processors=[
                    structlog.stdlib.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso", utc=True),
                    structlog.processors.JSONRenderer(),
                ],
                wrapper_class=structlog.stdlib.BoundLogger,
            )

    @property
    def enabled(self) -> bool:
        return self._logger is not None

    def success(self, action: str, uri: str, **details: Any) -> None:
        if self._logger is not None:
            self._logger.info(action, uri=uri, outcome="success", **details)

    def failure(self, action: str, uri: str, **details: Any) -> None:
        if self._logger is not None:
            self._logger.error(action, uri=uri, outcome="failure", **details)

    def summary(self, **details: Any) -> None:
        if self._logger is not None:
            self._logger.info("import_finished", **details)

    def close(self) -> None:
        if self._handler is not None:
            self._handler.flush()
            self._handler.close()
            self._handler = None
            self._logger = None
