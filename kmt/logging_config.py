"""Logging setup for the KMT service."""
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "kmt-stream"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the ``kmt`` logger.

    Safe to call more than once; the handler is only installed the first time.
    """
    logger = logging.getLogger("kmt")
    logger.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
