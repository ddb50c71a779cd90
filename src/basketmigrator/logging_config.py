"""structlog setup: console, the app log, and one JSON file per audit stream.

Rebalance and migration events are written by dedicated loggers so an
operator can review a rehearsal without the noise of the app log. They
still propagate to the root handlers.
"""

import logging
import logging.handlers
from pathlib import Path

import structlog

from basketmigrator.config import LoggingConfig

REBALANCE_LOGGER = "basketmigrator.rebalances"
MIGRATION_LOGGER = "basketmigrator.migrations"

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

# Handlers installed by configure_logging, tagged so a second call replaces them
_HANDLER_TAG = "_basketmigrator_handler"


def _tagged(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_TAG, True)
    return handler


def _rotating(path: str, config: LoggingConfig, formatter: logging.Formatter) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=config.max_bytes, backupCount=config.backup_count
    )
    return _tagged(handler, formatter)


def _drop_installed(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()


def configure_logging(config: LoggingConfig) -> None:
    """Route structlog through stdlib logging. Safe to call more than once."""
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    as_json = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_SHARED_PROCESSORS,
    )
    for_console = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=True),
        foreign_pre_chain=_SHARED_PROCESSORS,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper()))
    logging.getLogger("redis").setLevel(logging.WARNING)

    _drop_installed(root)
    root.addHandler(_tagged(logging.StreamHandler(), for_console))
    root.addHandler(_rotating(config.app_log, config, as_json))

    streams = {REBALANCE_LOGGER: config.rebalance_log, MIGRATION_LOGGER: config.migration_log}
    for name, path in streams.items():
        stream = logging.getLogger(name)
        _drop_installed(stream)
        stream.addHandler(_rotating(path, config, as_json))
        stream.propagate = True


def get_rebalance_logger() -> structlog.stdlib.BoundLogger:
    """Logger for flash-loan rebalance outcomes."""
    return structlog.get_logger(REBALANCE_LOGGER)


def get_migration_logger() -> structlog.stdlib.BoundLogger:
    """Logger for migration transitions and halts."""
    return structlog.get_logger(MIGRATION_LOGGER)
