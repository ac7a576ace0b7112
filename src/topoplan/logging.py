"""
Structured logging setup.

Planning and execution events carry the topology, account and region of the
run through structlog context variables.
"""

import logging

import structlog


def configure_logging(level: int | str = logging.INFO, *, json: bool = True) -> None:
    """Configure structlog over the standard logging bridge.

    ``json=False`` renders events for a terminal instead of as JSON lines.
    """

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")


def bind_run_context(topology: str, account: str, region: str) -> structlog.stdlib.BoundLogger:
    """Bind run fields so every downstream event carries them."""

    structlog.contextvars.bind_contextvars(topology=topology, account=account, region=region)
    return structlog.get_logger()


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()
