"""
gql_logger.py — debug-log sinks used by the GraphQL Client.

Any object with a ``debug(msg, *args)`` method can be installed on a
Client, so a plain ``logging.Logger`` works as-is.
"""
import logging
from typing import Any, Protocol, TextIO


class Logger(Protocol):
    def debug(self, msg: str, *args: Any) -> None: ...


class NullLogger:
    """Logger that discards everything."""

    def debug(self, msg: str, *args: Any) -> None:
        pass


def new_logger(stream: TextIO, prefix: str = "") -> logging.Logger:
    """
    Build a standalone logger writing DEBUG lines to ``stream``.

    The logger is not registered with the logging manager and does not
    propagate, so each call returns an independent sink.
    """
    logger = logging.Logger("dv_flow.libgql.debug", level=logging.DEBUG)
    logger.propagate = False
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(prefix.replace("%", "%%") + "%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    return logger
