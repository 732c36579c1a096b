"""
Bounded retry with a fixed delay between attempts.

Used for the firmware version probe (5 attempts, 250 ms apart) and for
raw read transfers (3 attempts, back to back).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import NagaError, RetriesExhausted

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, and how long to wait between tries.

    Attributes:
        attempts: Total number of calls, including the first.
        delay: Seconds slept after a failed attempt (not after the last).
        retry_on: Exception types that count as a failed attempt.  Anything
            else propagates immediately.
    """
    attempts: int
    delay: float = 0.0
    retry_on: tuple = (NagaError,)

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    def run(
        self,
        operation: Callable[[], T],
        accept: Optional[Callable[[T], bool]] = None,
        what: str = "operation",
    ) -> T:
        """Call *operation* until it succeeds or attempts run out.

        A call succeeds when it returns without raising one of
        ``retry_on`` and, if *accept* is given, ``accept(result)`` holds.

        Raises:
            The last exception raised by *operation*, if the final attempt
            raised.  :class:`RetriesExhausted` if the final attempt returned
            a result that *accept* rejected.
        """
        last_err: Optional[BaseException] = None

        for attempt in range(1, self.attempts + 1):
            try:
                result = operation()
            except self.retry_on as e:
                log.debug("%s attempt %d/%d failed: %s",
                          what, attempt, self.attempts, e)
                last_err = e
            else:
                if accept is None or accept(result):
                    return result
                log.debug("%s attempt %d/%d: result rejected",
                          what, attempt, self.attempts)
                last_err = None

            if attempt < self.attempts and self.delay:
                time.sleep(self.delay)

        if last_err is not None:
            raise last_err
        raise RetriesExhausted(
            f"{what} gave no acceptable result after {self.attempts} attempts",
            self.attempts,
        )


def with_retries(
    attempts: int,
    delay: float,
    operation: Callable[[], T],
    accept: Optional[Callable[[T], bool]] = None,
) -> T:
    """One-shot form of :meth:`RetryPolicy.run`."""
    return RetryPolicy(attempts, delay).run(operation, accept)
