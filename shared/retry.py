"""
Backoff configuration for reconnecting transports.
"""


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self, base_delay: float = 1.0, max_delay: float = 60.0):
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def fixed(cls, delay: float) -> "RetryConfig":
        """Constant delay between attempts."""
        return cls(base_delay=delay, max_delay=delay)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before the given (1-based) retry attempt.

    Reconnects wait the same delay every time, capped at max_delay.
    """
    return max(0.0, min(config.base_delay, config.max_delay))
