import logging

import structlog


def setup_logging(level: "str", log_file: "str" = "") -> "None":
    """
    maps string log level to logging module levels and configures
    structlog with a simple console renderer and timestamping. Logs
    go to log_file when given, otherwise to stderr.
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    handler: "logging.Handler"
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler()

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=[handler],
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=not log_file),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
