import logging
import time
from typing import Callable, Optional, TypeVar

from azkeyvault.core.errors import IssuanceTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def wait_for_issuance(name: str, fetch: Callable[[], T], is_issued: Callable[[T], bool],
                      interval: float = 5.0, timeout: Optional[float] = None,
                      first: Optional[T] = None) -> T:
    """
    Poll `fetch` until `is_issued` holds for its result.

    `first`, when given, counts as the first fetch. There is no attempt limit;
    `timeout` (seconds) bounds the wait and raises IssuanceTimeout. Errors
    raised by `fetch` end the loop.
    """
    started = time.monotonic()
    current = fetch() if first is None else first
    attempts = 1
    while not is_issued(current):
        if timeout is not None and time.monotonic() - started >= timeout:
            raise IssuanceTimeout(name, timeout, current)
        logger.debug(f"Certificate '{name}' still pending after {attempts} fetch(es)")
        time.sleep(interval)
        current = fetch()
        attempts += 1
    logger.info(f"Certificate '{name}' issued after {attempts} fetch(es)")
    return current
