import logging
import os
import traceback

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(name: str = "carpool_router", level: str = None) -> logging.Logger:
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format=LOG_FORMAT,
        )
    configured = logging.getLogger(name)
    configured.setLevel(getattr(logging, log_level, logging.INFO))
    return configured


def log_exception(log: logging.Logger, message: str, exc: Exception) -> None:
    """Log a failure message together with the exception's traceback"""
    log.error(f"{message}: {str(exc)}")
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    log.debug(f"Traceback: {tb}")


logger = configure_logging()
