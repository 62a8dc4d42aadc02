"""
Best-effort execution for side effects that must never fail a request.

Notification delivery and realtime broadcast run through `run_best_effort`,
which retries with exponential backoff and then gives up quietly.
"""
import logging
import time
from typing import Callable, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)


def run_best_effort(
    label: str,
    func: Callable,
    *args,
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    **kwargs
) -> bool:
    """Call `func`, retrying on any exception. Returns True on success."""
    attempts = max(1, attempts if attempts is not None else settings.SIDE_EFFECT_ATTEMPTS)
    backoff = backoff if backoff is not None else settings.SIDE_EFFECT_BACKOFF_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            func(*args, **kwargs)
            return True
        except Exception as e:
            if attempt < attempts:
                logger.warning(f"{label} failed (attempt {attempt}/{attempts}): {e}")
                time.sleep(backoff * (2 ** (attempt - 1)))
            else:
                logger.error(f"{label} failed after {attempts} attempts, giving up: {e}")
    return False
