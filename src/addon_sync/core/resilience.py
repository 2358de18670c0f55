"""
Retry policy for manifest fetches.

Manifest fetches retry a small, fixed number of times with a linear delay.
Nothing else in the engine retries automatically.
"""


class LinearBackoff:
    """Linear backoff: attempt ``n`` (1-based retry) waits ``base_delay * n``."""

    def __init__(self, base_delay: float = 1.0, max_retries: int = 2):
        self.base_delay = base_delay
        self.max_retries = max_retries

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0 means first try, no delay)."""
        return max(0.0, self.base_delay * attempt)

    def should_retry(self, attempt: int) -> bool:
        """Check if another attempt is allowed after ``attempt`` retries."""
        return attempt < self.max_retries
