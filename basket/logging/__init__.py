from basket.logging.logger import LOGGER_CONFIG, logger, setup_logger

__all__ = ("LOGGER_CONFIG", "logger", "setup_logger")
