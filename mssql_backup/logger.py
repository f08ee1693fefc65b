import logging
import logging.handlers
import os
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str = None, log_file: str = None):
    """Configure the logging for the backup run.

    The level comes from LOG_LEVEL and the optional rotating log file from
    LOG_FILE unless given explicitly.
    """
    log_level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.environ.get("LOG_FILE")
    unknown_level = None
    if not isinstance(logging.getLevelName(log_level), int):
        unknown_level, log_level = log_level, "INFO"

    # Get the root logger
    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # Console Handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotating File Handler
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=10 * 1024 * 1024, backupCount=5  # 10 MB
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to create log file handler for {log_file}: {e}")

    logging.getLogger("mssql_backup").setLevel(log_level)

    if unknown_level:
        logging.warning(f"Unknown log level '{unknown_level}', using INFO")

    logging.debug(f"Logging configured with level {log_level}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
