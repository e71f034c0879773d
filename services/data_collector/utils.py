"""
Utility functions for the financial data collector.
"""
import time
import logging
from functools import wraps
from typing import Callable, Any, Optional
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
import threading

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe rate limiter that spaces requests evenly.

    Shared by every worker thread of a scan so the provider sees one
    request stream regardless of scanner concurrency.

    Attributes:
        requests_per_second: Maximum number of requests allowed per second
    """

    def __init__(self, requests_per_second: float = 1.0):
        """
        Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second (default: 1.0)
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.requests_per_second = requests_per_second
        self.interval = 1.0 / requests_per_second
        self.last_request_time = 0.0
        self.lock = threading.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int) -> "RateLimiter":
        """Build a limiter from a provider quota expressed per minute."""
        return cls(requests_per_second=requests_per_minute / 60.0)

    def wait(self):
        """
        Block until the next request slot is available.
        """
        with self.lock:
            current_time = time.monotonic()
            time_since_last_request = current_time - self.last_request_time

            if time_since_last_request < self.interval:
                sleep_time = self.interval - time_since_last_request
                logger.debug(f"Rate limiting: sleeping for {sleep_time:.3f} seconds")
                time.sleep(sleep_time)

            self.last_request_time = time.monotonic()

    def __call__(self, func: Callable) -> Callable:
        """
        Decorator to apply rate limiting to a function.

        Args:
            func: Function to rate limit

        Returns:
            Wrapped function with rate limiting
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            self.wait()
            return func(*args, **kwargs)
        return wrapper


def retry_on_error(
    max_attempts: int = 3,
    min_wait: float = 2,
    max_wait: float = 10,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for retrying functions with exponential backoff.

    The last exception is re-raised once attempts are exhausted.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        exceptions: Tuple of exception types to retry on

    Returns:
        Decorator function

    Example:
        @retry_on_error(max_attempts=3, min_wait=1, max_wait=5,
                        exceptions=(RateLimitError,))
        def get_json(path):
            ...
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


def log_execution_time(func: Callable) -> Callable:
    """
    Decorator to log function execution time.

    Args:
        func: Function to time

    Returns:
        Wrapped function with execution timing
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        logger.debug(f"Starting {func.__name__}")

        try:
            result = func(*args, **kwargs)
            execution_time = time.time() - start_time
            logger.info(f"Completed {func.__name__} in {execution_time:.2f} seconds")
            return result
        except Exception as e:
            execution_time = time.time() - start_time
            logger.error(f"Failed {func.__name__} after {execution_time:.2f} seconds: {e}")
            raise

    return wrapper


def safe_float_conversion(value: Any, default: Optional[float] = None) -> Optional[float]:
    """
    Safely convert a provider value to float.

    Missing values stay missing (None by default) so that downstream
    calculations never mistake an absent figure for zero.

    Args:
        value: Value to convert
        default: Value returned when conversion fails

    Returns:
        Float value or default
    """
    try:
        if value is None or value == '' or value == '-':
            return default
        result = float(value)
        if result != result:  # NaN
            return default
        return result
    except (ValueError, TypeError):
        return default
