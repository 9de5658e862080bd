import os
import sys
from pathlib import Path

from loguru import logger


def configure_logger(
    env: str = "development",
    console_level: str = None,
    log_dir: str = None,
    file_level: str = "DEBUG",
    error_file_level: str = "ERROR",
) -> None:
    """
    Configure the Loguru logger used by both services.

    Args:
        env: Environment ("development" or "production") to set default log levels.
        console_level: Log level for console output (overrides env-based default).
        log_dir: Directory for rotating log files. Console only when unset.
        file_level: Log level for the general log file.
        error_file_level: Log level for the error-specific log file.
    """
    logger.remove()

    log_format = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | "
        "{module}:{function}:{line} - {message} | {extra}"
    )

    default_console_level = "DEBUG" if env.lower() == "development" else "INFO"
    console_level = console_level or default_console_level

    logger.add(
        sys.stderr,
        format=log_format,
        level=console_level.upper(),
        backtrace=True,
        diagnose=env.lower() == "development",
        colorize=sys.stderr.isatty(),
    )

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        logger.add(
            path / "app.log",
            format=log_format,
            level=file_level.upper(),
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )
        logger.add(
            path / "error.log",
            format=log_format,
            level=error_file_level.upper(),
            rotation="5 MB",
            retention="30 days",
            compression="zip",
        )

    logger.debug(
        "Logger configured",
        env=env,
        console_level=console_level,
        log_dir=log_dir,
    )


configure_logger(
    env=os.getenv("ENV", "development"),
    console_level=os.getenv("CONSOLE_LOG_LEVEL"),
    log_dir=os.getenv("LOG_DIR"),
    file_level=os.getenv("FILE_LOG_LEVEL", "DEBUG"),
    error_file_level=os.getenv("ERROR_LOG_LEVEL", "ERROR"),
)

log = logger
