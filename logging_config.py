import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> None:
    """Route all log output to a single stderr sink at ``level``."""
    logger.remove()
    logger.configure(
        handlers=[  # type: ignore[list-item]
            {
                "sink": sys.stderr,
                "level": level.upper(),
                "format": LOG_FORMAT,
                "colorize": sys.stderr.isatty(),
            },
        ]
    )
