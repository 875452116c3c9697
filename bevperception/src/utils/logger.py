import os
import logging
from typing import Optional

ROOT_LOGGER_NAME = "bev_perception"

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child logger of the package logger, e.g. get_logger(__name__)."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith("bevperception."):
        name = name[len("bevperception."):]
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Setup python logging for the package logger."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # calling twice must not duplicate the output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, 'bev_perception.log'))
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
