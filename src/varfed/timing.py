"""Wall-clock timing for pipeline operations.

Usage:
    @timed("liftover")
    async def liftover(...):
        ...
"""

import functools
import inspect
import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def timed(name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Log the elapsed time of a sync or async callable at DEBUG."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    logger.debug("%s took %.3fs", name, time.perf_counter() - started)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                logger.debug("%s took %.3fs", name, time.perf_counter() - started)

        return wrapper

    return decorator
