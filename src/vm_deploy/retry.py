import time
from typing import Callable, Optional


def retry_until(
    predicate: Callable[[], bool],
    max_attempts: int,
    interval: float,
    on_retry: Optional[Callable[[int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Calls `predicate` up to `max_attempts` times at a fixed interval.
    Returns True on the first success, False once the attempts are exhausted.
    No sleep happens after the final attempt.
    """
    for attempt in range(1, max_attempts + 1):
        if predicate():
            return True
        if attempt == max_attempts:
            break
        if on_retry:
            on_retry(attempt)
        sleep(interval)
    return False
