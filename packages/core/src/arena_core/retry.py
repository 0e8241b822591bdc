"""
Retry policy helpers: exponential backoff with jitter and the fixed
non-retryable error taxonomy.
"""

import random

from .exceptions import NonRetryableError

# Status codes that retrying cannot fix
NON_RETRYABLE_STATUS_CODES = {401, 403, 404}

# Error keywords indicating bad credentials or a missing resource
NON_RETRYABLE_ERROR_KEYWORDS = [
    "invalid_api_key",
    "invalid api key",
    "unauthorized",
    "forbidden",
    "not_found",
    "not found",
]


def is_non_retryable(error: BaseException) -> bool:
    """Check if error belongs to the non-retryable taxonomy."""
    if isinstance(error, NonRetryableError):
        return True

    status_code = getattr(error, "status_code", None)
    if status_code in NON_RETRYABLE_STATUS_CODES:
        return True

    error_str = str(error).lower()
    for keyword in NON_RETRYABLE_ERROR_KEYWORDS:
        if keyword in error_str:
            return True

    return False


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter_factor: float = 0.0,
    rng: random.Random | None = None,
) -> float:
    """
    Delay in seconds before retry ``attempt``.

    ``min(base * 2**attempt, max_delay)`` perturbed by up to
    ``±jitter_factor`` of itself, clamped to ``[0, max_delay]``.
    """
    exponential = min(base_delay * (2 ** attempt), max_delay)
    spread = (rng or random).uniform(-1.0, 1.0)
    delay = exponential + exponential * jitter_factor * spread
    return min(max(0.0, delay), max_delay)
