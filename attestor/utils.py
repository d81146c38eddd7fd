"""
Utility functions for the prediction attestation agent.

This module provides shared helper utilities used by the agent layer.
All functions are pure helpers with no domain logic.
"""

import json
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

# Configure module logger
logger = logging.getLogger(__name__)

# Type variable for generic function typing
T = TypeVar('T')


def safe_json_loads(text: str, default: Optional[Any] = None) -> Optional[Any]:
    """
    Safely parse JSON from text, handling malformed model output.

    Attempts to extract JSON from text that may contain markdown code blocks,
    explanatory text, or other formatting. Returns default on failure.

    Args:
        text: Text string that may contain JSON
        default: Default value to return if parsing fails (default: None)

    Returns:
        Parsed JSON object/dict/list, or default value if parsing fails
    """
    if not text or not isinstance(text, str):
        return default

    text = text.strip()

    # Remove markdown code blocks if present
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    text = text.strip()

    # Try to find JSON object boundaries
    first_brace = text.find("{")
    first_bracket = text.find("[")

    # Determine if JSON is object or array
    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        last_brace = text.rfind("}")
        if last_brace != -1 and last_brace > first_brace:
            text = text[first_brace:last_brace + 1]
    elif first_bracket != -1:
        last_bracket = text.rfind("]")
        if last_bracket != -1 and last_bracket > first_bracket:
            text = text[first_bracket:last_bracket + 1]

    if not text:
        return default

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON decode error: {e}")
        logger.debug(f"Failed to parse text: {text[:200]}")
        return default


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for retrying function calls with exponential backoff.

    Retries the decorated function on specified exceptions with exponential
    backoff between attempts. Used for calls to the Sapience API.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds before first retry (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 60.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        exceptions: Tuple of exceptions to catch and retry on (default: Exception)

    Returns:
        Decorator function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception = None
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {delay:.2f}s..."
                        )
                        time.sleep(delay)

                        delay = min(delay * exponential_base, max_delay)
                    else:
                        logger.error(
                            f"{func.__name__} failed after {max_retries + 1} attempts: {e}"
                        )

            # All retries exhausted, raise last exception
            raise last_exception

        return wrapper

    return decorator


def safe_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """
    Safely convert a value to float with a default fallback.

    Handles None, strings, integers, and floats. Returns default on failure.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default

    return default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an API timestamp into a timezone-aware UTC datetime.

    Accepts ISO 8601 strings (with or without "Z") and Unix timestamps in
    seconds or milliseconds, as int, float or numeric string.

    Args:
        value: Timestamp from an API payload

    Returns:
        Datetime in UTC, or None if the value cannot be parsed
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    numeric = safe_float(value, None)
    if numeric is not None:
        # Values this large are milliseconds
        if numeric > 1e11:
            numeric /= 1000.0
        try:
            return datetime.fromtimestamp(numeric, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Timestamp out of range: {value}")
            return None

    if not isinstance(value, str):
        return None

    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Could not parse timestamp: {value}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_percentage(value: float, decimals: int = 1) -> str:
    """
    Format a fraction (0.0 to 1.0) as a percentage string, e.g. "65.5%".
    """
    return f"{value * 100.0:.{decimals}f}%"
