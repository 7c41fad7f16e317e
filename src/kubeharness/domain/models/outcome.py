"""OperationOutcome model - tagged result of a provisioning attempt"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ErrorClass(str, Enum):
    """Classification of a control-plane error"""

    CONFLICT = "conflict"  # Object already exists; resolved to success
    RETRYABLE = "retryable"
    FATAL = "fatal"


class OutcomeKind(str, Enum):
    """Kind of an operation outcome"""

    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    # Terminal kinds produced by the retry engine itself
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    INVALID = "invalid"


@dataclass
class RetryContext:
    """Bookkeeping for a single execute() call.

    attempts and elapsed only ever grow; a fresh context is created per call.
    """

    interval: float
    attempts: int = 0
    elapsed: float = 0.0
    intervals: List[float] = field(default_factory=list)

    def advance(self, elapsed: float) -> None:
        """Move the elapsed clock forward (never backwards)"""
        self.elapsed = max(self.elapsed, elapsed)

    def record_attempt(self, elapsed: float) -> None:
        """Count a finished attempt"""
        self.attempts += 1
        self.advance(elapsed)

    def record_sleep(self, seconds: float, next_interval: float, elapsed: float) -> None:
        """Remember a backoff sleep and the interval that follows it"""
        self.intervals.append(seconds)
        self.interval = next_interval
        self.advance(elapsed)


@dataclass(frozen=True)
class OperationOutcome:
    """Result of one attempt, or the terminal result of a retry run"""

    kind: OutcomeKind
    value: Any = None  # Object returned by a successful call
    cause: Optional[BaseException] = None  # Original error for non-success kinds
    context: Optional[RetryContext] = None  # Attached by the retry engine

    @classmethod
    def success(cls, value: Any = None) -> "OperationOutcome":
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def already_exists(cls, cause: Optional[BaseException] = None) -> "OperationOutcome":
        return cls(OutcomeKind.ALREADY_EXISTS, cause=cause)

    @classmethod
    def retryable(cls, cause: BaseException) -> "OperationOutcome":
        return cls(OutcomeKind.RETRYABLE, cause=cause)

    @classmethod
    def fatal(cls, cause: BaseException) -> "OperationOutcome":
        return cls(OutcomeKind.FATAL, cause=cause)

    @property
    def is_successful(self) -> bool:
        """Check if outcome is a terminal success (created or already present)"""
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.ALREADY_EXISTS)

    @property
    def is_retryable(self) -> bool:
        return self.kind is OutcomeKind.RETRYABLE

    @property
    def attempts(self) -> int:
        """Number of attempts recorded by the retry engine (0 if not executed)"""
        return self.context.attempts if self.context else 0

    @property
    def elapsed(self) -> float:
        return self.context.elapsed if self.context else 0.0
