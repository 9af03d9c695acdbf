"""
Loguru configuration shared by the CLI entry points.
"""

import sys

from loguru import logger

from .config import get_settings

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(service: str) -> None:
    """
    Configure loguru from settings (JSON or coloured text).

    Every record carries ``extra["service"]``. Tracebacks omit local variable
    values.
    """
    settings = get_settings()
    logger.remove()
    logger.configure(extra={"service": service})

    if settings.log_format == "json":
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            format=TEXT_FORMAT,
            level=settings.log_level,
            diagnose=False,
        )
    logger.debug(f"Logging configured for {service} ({settings.log_format}, {settings.log_level})")
