import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..exceptions import TransientRemoteError

T = TypeVar('T')


class RetryPolicy:
    """
    Bounded exponential backoff around a single call.

    Only exceptions listed in `retry_on` are retried; the delay doubles per
    attempt up to max_delay, and a server-provided Retry-After wins when it
    is longer. The last exception is re-raised once attempts run out.
    """

    def __init__(self,
                 max_attempts: int = 5,
                 base_delay: float = 1.0,
                 max_delay: float = 30.0,
                 jitter: float = 0.0,
                 retry_on: Tuple[Type[BaseException], ...] = (TransientRemoteError,),
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_on = retry_on
        self.sleep = sleep

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Delay before retry number `attempt` (1-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        retry_after = getattr(error, 'retry_after', None)
        if retry_after:
            delay = max(delay, min(float(retry_after), self.max_delay))
        return delay

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logging.warning(f"Giving up after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(attempt, e)
                logging.warning(f"Attempt {attempt} failed ({e}). Retrying in {delay:.2f}s...")
                self.sleep(delay)
                attempt += 1
