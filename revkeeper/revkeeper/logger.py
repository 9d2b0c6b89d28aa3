
import sys
import logging
from copy import copy
from typing import Optional


this = sys.modules[__name__]
LOGGER_NAME = 'revkeeper'
COLORS = {
    'DEBUG': 37,
    'INFO': 36,
    'WARNING': 33,
    'ERROR': 31,
    'CRITICAL': 41
}

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL
}

PATTERN = "[%(asctime)s][%(name)s][%(threadName)s][%(levelname)s]: %(message)s"
PREFIX = '\033['
SUFFIX = '\033[0m'


class ColoredFormatter(logging.Formatter):
    def format(self, record):
        colored_record = copy(record)
        level_name = colored_record.levelname

        seq = COLORS.get(level_name, 37)
        colored_record.levelname = '{0}{1}m{2}{3}'.format(PREFIX, seq, level_name, SUFFIX)

        return logging.Formatter.format(self, colored_record)


def resolve_level(level: str) -> int:
    return LEVELS.get(str(level).lower(), LEVELS['info'])


def setup_dummy_logger():
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers.copy():
        logger.removeHandler(handler)
    this.logger = logger


def setup_logger(path: Optional[str], level: str):
    """ Creates a logger instance with a colored console handler and an optional log file """

    logger = logging.getLogger(LOGGER_NAME)
    level = resolve_level(level)
    logger.setLevel(level)

    for handler in logger.handlers.copy():
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(PATTERN))
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    # plain text in files, escape sequences only make sense on a terminal
    if path:
        file_handler = logging.FileHandler(path, 'a+')
        file_handler.setFormatter(logging.Formatter(PATTERN))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    this.logger = logger


# usable before setup_logger() was called, e.g. in tests or when imported as a library
this.logger = logging.getLogger(LOGGER_NAME)


class Logger:
    @staticmethod
    def debug(msg: str):
        this.logger.debug(msg)

    @staticmethod
    def info(msg: str):
        this.logger.info(msg)

    @staticmethod
    def warning(msg: str):
        this.logger.warning(msg)

    @staticmethod
    def error(msg: str):
        this.logger.error(msg)
