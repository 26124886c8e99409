import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
HANDLER_NAME = "codepair"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Safe to call once per app instance: repeated calls only adjust the level.
    """
    logger = logging.getLogger("codepair")
    logger.setLevel(level.upper())
    if not any(handler.get_name() == HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
