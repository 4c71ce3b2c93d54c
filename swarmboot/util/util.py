"""
General purpose utilities
"""
import asyncio
import re

from functools import wraps


def name_validation(name, kind="cluster-name"):
    """
    Validates a name used as cluster or host name.
    Each name should conform to the following convention:
    not too long (maximum 63 characters, a DNS label)
    only ASCII-letters, numbers and dashes, not starting with a dash

    Args:
        name (str): The name to be checked
        kind (str): What the name is used for, shown in the error

    Returns:
        Name if valid

    Raises:
        ValueError if the name is invalid.
    """
    if not isinstance(name, str) or not name:
        raise ValueError(f"{kind} can't be empty")
    if len(name) > 63:
        raise ValueError(f"{kind} '{name}' is too long")
    allowed = re.compile(r"^[a-zA-Z\d][a-zA-Z\d-]*$")
    if not allowed.match(name):
        raise ValueError(f"{kind} '{name}' is using illegal characters")
    return name


def backoff_delays(tries, delay, backoff):
    """
    Yield the sleep time before each retry, ``tries - 1`` values in total.
    """
    mdelay = delay
    for _ in range(tries - 1):
        yield mdelay
        mdelay *= backoff


def async_retry(exceptions, tries=4, delay=3, backoff=2, logger=None):
    """
    Retry calling the decorated coroutine function using an exponential
    backoff.

    The waiting happens with :func:`asyncio.sleep`, so other hosts
    keep making progress while one of them backs off.

    Args:
        exceptions: The exception to check. may be a tuple of exceptions to check.
        tries: Number of times to try (not retry) before giving up.
        delay: Initial delay between retries in seconds.
        backoff: Backoff multiplier (e.g. value of 2 will double the delay each retry).
        logger: Called with a message before every retry, if given.
    """
    def deco_retry(f):  # pylint: disable=invalid-name

        @wraps(f)
        async def f_retry(*args, **kwargs):
            for mdelay in backoff_delays(tries, delay, backoff):
                try:
                    return await f(*args, **kwargs)
                except exceptions as e:  # pylint: disable=invalid-name
                    msg = '{}, Retrying in {} seconds...'.format(e,
                                                                 int(mdelay))
                    if logger:
                        logger(msg)
                    await asyncio.sleep(mdelay)
            return await f(*args, **kwargs)

        return f_retry

    return deco_retry
