"""Retry policy model."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class RetryPolicy(BaseModel):
    """Configuration for the provisioning retry loop.

    Attributes:
        max_attempts: Maximum number of attempts (total tries, not retries)
        initial_delay: Initial backoff interval in seconds
        backoff_multiplier: Exponential backoff growth factor
        max_delay: Upper bound for a single backoff interval in seconds
        max_elapsed: Optional bound on total elapsed seconds (None = attempts only)
        jitter: Random jitter factor (0.0-1.0) applied to the initial delay
    """

    max_attempts: int = Field(6, gt=0, le=50)
    initial_delay: float = Field(1.0, ge=0.0)  # Allow 0 for tests
    backoff_multiplier: float = Field(2.0, ge=1.0, le=10.0)
    max_delay: float = Field(30.0, ge=0.0)
    max_elapsed: Optional[float] = Field(None, gt=0.0)
    jitter: float = Field(0.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_cap(self) -> "RetryPolicy":
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self

    def interval_for(self, attempt: int) -> float:
        """Backoff interval after the given (1-based) failed attempt, without jitter."""
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)
