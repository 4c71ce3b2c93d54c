"""This module defines logging capabilities for swarmboot.

Bootstrap work runs concurrently on many hosts, so every message can carry
the host it concerns. The prefix keeps interleaved lines readable::

    [~] swarm-worker-1: joining cluster as worker
    [+] swarm-master-2: joined cluster as manager
"""

import logging
import sys
import time

# pylint: disable=no-name-in-module
from swarmboot.util.hue import (bad, red, info as infomsg, yellow, run, grey,
                                good, green, bold)

LOG_LEVELS = list(range(5))
DEFAULT_LOG_LEVEL = 3

LEVEL_NAMES = {
    'quiet': 0,
    'error': 1,
    'warning': 2,
    'info': 3,
    'debug': 4}

_PYTHON_LEVELS = {1: logging.ERROR, 2: logging.WARNING, 3: logging.INFO,
                  4: logging.DEBUG}


def to_level(level):
    """Translate a verbosity given as name or number into an int.

    Args:
        level (str or int): e.g. ``"debug"``, ``"4"`` or ``4``.

    Raises:
        ValueError if the level is unknown.
    """
    if isinstance(level, str) and level in LEVEL_NAMES:
        return LEVEL_NAMES[level]

    level = int(level)
    if level not in LOG_LEVELS:
        raise ValueError(f"log level {level} is not supported")
    return level


def get_logger(name):
    """Returns a Python logger writing bare messages to STDOUT.

    Only a single handler is attached per name, repeated calls with the same
    name would otherwise print every line several times.
    """
    log = logging.getLogger(name)
    set_level(log, Logger.LOG_LEVEL)

    if not log.handlers:
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(sh)
        log.propagate = False

    return log


def set_level(logger, level):
    """Sets the level of a Python logger from a swarmboot verbosity.

    Level 0 disables the logger, 1 to 4 map to ERROR, WARNING, INFO and
    DEBUG.

    Raises:
        ValueError if log level is unsupported.
    """
    if level not in LOG_LEVELS:
        raise ValueError(f"log level {level} is not supported")

    if level == 0:
        logger.disabled = True
        return

    logger.disabled = False
    logger.setLevel(_PYTHON_LEVELS[level])


class Logger:
    """A thin wrapper around :class:`logging.Logger` with coloured prefixes.

    All instances follow the class wide ``LOG_LEVEL``. Use
    :meth:`Logger.set_verbosity` to change it for every logger already
    created, e.g. after parsing the command line.

    The levels are:

    .. code:: shell

        * 0 - quiet (no output)
        * 1 - error
        * 2 - warning
        * 3 - info
        * 4 - debug

    Every method accepts ``%``-style arguments and an optional ``host``
    keyword which prefixes the message with the host name.

    Example:
        >>> log = Logger(__name__)
        >>> log.info("installing runtime", host="swarm-master-1")
        [~] swarm-master-1: installing runtime
    """

    LOG_LEVEL = DEFAULT_LOG_LEVEL
    _instances = {}

    def __init__(self, name):
        self.name = name
        self.logger = get_logger(name)
        Logger._instances[name] = self

    @classmethod
    def set_verbosity(cls, level):
        """Set the verbosity of all loggers, present and future."""
        level = to_level(level)
        cls.LOG_LEVEL = level
        for inst in cls._instances.values():
            set_level(inst.logger, level)

    @property
    def level(self):
        """The Python level of the wrapped logger, 0 when disabled."""
        if self.logger.disabled:
            return 0
        return self.logger.level

    @level.setter
    def level(self, level):
        set_level(self.logger, to_level(level))

    @staticmethod
    def _with_host(msg, host):
        if host:
            return f"{bold(host)}: {msg}"
        return msg

    def error(self, msg, *args, color=True, host=None, **kwargs):
        """Logs on error level, in red with ``[-]`` if color is set."""
        if color:
            msg = bad(red(self._with_host(msg, host)))
        else:
            msg = self._with_host(msg, host)
        self.logger.error(msg, *args, **kwargs)

    def warning(self, msg, *args, color=True, host=None, **kwargs):
        """Logs on warning level, in yellow with ``[!]`` if color is set."""
        if color:
            msg = infomsg(yellow(self._with_host(msg, host)))
        else:
            msg = self._with_host(msg, host)
        self.logger.warning(msg, *args, **kwargs)

    def info(self, msg, *args, color=True, host=None, **kwargs):
        """Logs on info level, in grey with ``[~]`` if color is set."""
        if color:
            msg = run(grey(self._with_host(msg, host)))
        else:
            msg = self._with_host(msg, host)
        self.logger.info(msg, *args, **kwargs)

    def debug(self, msg, *args, color=True, host=None, **kwargs):
        """Logs on debug level, prefixed with the current timestamp.

        Example:
            >>> log.debug("docker info")
            [20190426-155611] docker info
        """
        msg = self._with_host(msg, host)
        if color:
            now = time.strftime("%Y%m%d-%H%M%S")
            msg = grey(f"[{now}] {msg}")
        self.logger.debug(msg, *args, **kwargs)

    def success(self, msg, *args, color=True, host=None, **kwargs):
        """Indicates a success, logged on info level with ``[+]``."""
        if color:
            msg = good(green(self._with_host(msg, host)))
        else:
            msg = self._with_host(msg, host)
        self.logger.info(msg, *args, **kwargs)
