# pinger/log.py
import logging

PACKAGE_LOGGER = "pinger"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure(level=logging.INFO, stream=None) -> logging.Logger:
    """Send pinger.* records to *stream* (stderr by default).

    Safe to call more than once: the handler is attached a single time and
    later calls only change the level.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if not any(h.get_name() == PACKAGE_LOGGER for h in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.set_name(PACKAGE_LOGGER)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_logger(name):
    return logging.getLogger(name)
