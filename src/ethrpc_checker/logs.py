# SPDX-License-Identifier: AGPL-3.0

import logging

from rich.logging import RichHandler

#
# Basic logging
#

logging.basicConfig(
    format="%(message)s",
    handlers=[RichHandler(level=logging.NOTSET, show_time=False, show_path=False)],
)

logger = logging.getLogger("ethrpc_checker")


#
# Logging with filtering out duplicate log messages
#


class UniqueLoggingFilter(logging.Filter):
    def __init__(self):
        self.records = set()

    def filter(self, record):
        if record.msg in self.records:
            return False
        self.records.add(record.msg)
        return True


logger_unique = logging.getLogger("ethrpc_checker.unique")
logger_unique.addFilter(UniqueLoggingFilter())


def logger_for(allow_duplicate=True) -> logging.Logger:
    return logger if allow_duplicate else logger_unique


def debug(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).debug(text)


def info(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).info(text)


def warn(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).warning(text)


def error(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).error(text)


def debug_once(text: str) -> None:
    debug(text, allow_duplicate=False)


def set_debug(enabled: bool) -> None:
    level = logging.DEBUG if enabled else logging.INFO
    logger.setLevel(level)
    logger_unique.setLevel(level)

    # web3 and urllib3 are chatty at debug level, keep them quiet unless asked
    for name in ("web3", "urllib3"):
        logging.getLogger(name).setLevel(level if enabled else logging.WARNING)
