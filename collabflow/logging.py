import logging
import sys

import structlog

# third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("aiosqlite", "httpx", "mcp")


def _resolve_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def build_processors(colors: bool) -> list:
    return [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=colors),
    ]


def configure_logging(level: str = "INFO", colors: bool | None = None):
    """Route structlog output to stderr.

    stdout stays clean for the MCP stdio transport. Colors default to
    whether stderr is a terminal, since MCP hosts usually capture it.
    """
    if colors is None:
        colors = sys.stderr.isatty()
    structlog.configure(
        processors=build_processors(colors),
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "collabflow")


def uvicorn_log_config(level: str = "INFO", colors: bool = True) -> dict:
    processors = build_processors(colors)
    formatter = {
        "()": structlog.stdlib.ProcessorFormatter,
        "processor": processors[-1],
        "foreign_pre_chain": processors[:-1],
    }
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "default": {"formatter": "default", "class": "logging.StreamHandler", "stream": "ext://sys.stderr"},
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"level": level},
            # request lines only show up when debugging
            "uvicorn.access": {
                "handlers": ["default"],
                "level": "INFO" if level == "DEBUG" else "WARNING",
                "propagate": False,
            },
        },
    }
