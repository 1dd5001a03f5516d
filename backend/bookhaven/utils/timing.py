"""Small timing helpers used when DEBUG is on."""
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.perf_counter() * 1000


def log_elapsed(start_ms: float, label: str, log: Optional[logging.Logger] = None) -> float:
    """
    Log milliseconds since start_ms at DEBUG level and return a fresh start time.

    Example:
        t = now_ms()
        t = log_elapsed(t, "load signals")
        t = log_elapsed(t, "preference query")
    """
    (log or logger).debug("%s: %.2fms", label, now_ms() - start_ms)
    return now_ms()

