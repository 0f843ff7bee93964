import logging


def setup_logger(config):
    logger = logging.getLogger("basket")
    logger.setLevel(config.get("level", "WARNING"))
    handler = logging.StreamHandler()
    handler.setLevel(config.get("level", "WARNING"))
    handler.setFormatter(
        logging.Formatter(
            config.get(
                "format",
                "%(asctime)s %(levelname)s %(name)s %(message)s",
            )
        )
    )
    logger.handlers = []  # Reset handler
    logger.addHandler(handler)
    return logger


LOGGER_CONFIG = {
    "level": "WARNING",
    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
}

logger = setup_logger(LOGGER_CONFIG)
