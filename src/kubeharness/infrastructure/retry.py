"""Bounded retry executor using tenacity.

execute() runs a single-attempt operation until it succeeds, fails fatally,
exhausts the policy, or the caller cancels the backoff wait. Every terminal
outcome carries the RetryContext of the run and, for failures, the original
cause.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential,
    wait_random,
)

from kubeharness.domain.config.retry import RetryPolicy
from kubeharness.domain.errors import RequestValidationError
from kubeharness.domain.models.outcome import OperationOutcome, OutcomeKind, RetryContext
from kubeharness.domain.models.resource import validate_request
from kubeharness.infrastructure.classifier import outcome_for_error

logger = logging.getLogger(__name__)

Operation = Callable[[], OperationOutcome]

_NO_REQUEST = object()


class _BackoffCancelled(Exception):
    """Raised from the sleep hook to unwind tenacity when the caller cancels."""


def build_wait(policy: RetryPolicy):
    """Create the tenacity wait strategy for a policy.

    Exponential backoff: initial_delay * (backoff_multiplier ^ (attempt - 1)), capped at max_delay.
    Jitter never pushes a sleep above max_delay.
    """
    wait = wait_exponential(
        multiplier=policy.initial_delay,
        exp_base=policy.backoff_multiplier,
        min=policy.initial_delay,
        max=policy.max_delay,
    )
    if policy.jitter <= 0:
        return wait

    jitter_amount = policy.initial_delay * policy.jitter
    jittered = wait + wait_random(-jitter_amount, jitter_amount)

    def _capped(retry_state: RetryCallState) -> float:
        return max(0.0, min(policy.max_delay, jittered(retry_state)))

    return _capped


def build_stop(policy: RetryPolicy):
    """Stop on max_attempts, or on max_elapsed if set; whichever comes first."""
    stop = stop_after_attempt(policy.max_attempts)
    if policy.max_elapsed is not None:
        # Accounts for the upcoming sleep so no attempt starts past the deadline
        stop = stop | stop_before_delay(policy.max_elapsed)
    return stop


def execute(
    operation: Operation,
    policy: RetryPolicy,
    cancel: Optional[threading.Event] = None,
    request: Any = _NO_REQUEST,
) -> OperationOutcome:
    """Run operation with bounded exponential backoff.

    Args:
        operation: No-argument callable performing exactly one attempt
        policy: Retry policy (backoff seed, growth factor, cap, bounds)
        cancel: Optional event; setting it aborts an in-progress backoff wait
        request: Optional request the operation acts on; an empty request
            fails immediately with an INVALID outcome

    Returns:
        Terminal OperationOutcome: SUCCESS, ALREADY_EXISTS, FATAL, EXHAUSTED,
        CANCELLED or INVALID, with the run's RetryContext attached
    """
    context = RetryContext(interval=policy.initial_delay)

    if request is not _NO_REQUEST:
        try:
            validate_request(request)
        except RequestValidationError as e:
            logger.error(f"Rejected provisioning request: {e}")
            return OperationOutcome(OutcomeKind.INVALID, cause=e, context=context)

    if cancel is None:
        cancel = threading.Event()
    started = time.monotonic()
    last: dict = {"outcome": None}

    def _attempt() -> OperationOutcome:
        try:
            outcome = operation()
        except Exception as e:
            # Operation raised instead of returning an outcome
            outcome = outcome_for_error(e)
        context.record_attempt(time.monotonic() - started)
        last["outcome"] = outcome
        return outcome

    def _sleep(seconds: float) -> None:
        if cancel.wait(seconds):
            context.advance(time.monotonic() - started)
            raise _BackoffCancelled()
        context.record_sleep(
            seconds,
            policy.interval_for(context.attempts + 1),
            time.monotonic() - started,
        )

    def _before_sleep_log(retry_state: RetryCallState) -> None:
        if retry_state.outcome is None:
            return
        outcome = retry_state.outcome.result()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Transient error (attempt {retry_state.attempt_number}/{policy.max_attempts}): "
            f"{outcome.cause}. Retrying in {delay:.2f}s..."
        )

    def _exhausted(retry_state: RetryCallState) -> OperationOutcome:
        outcome = retry_state.outcome.result()
        logger.error(f"Giving up after {context.attempts} attempts: {outcome.cause}")
        return OperationOutcome(OutcomeKind.EXHAUSTED, cause=outcome.cause)

    retrying = Retrying(
        stop=build_stop(policy),
        wait=build_wait(policy),
        retry=retry_if_result(lambda outcome: outcome.is_retryable),
        sleep=_sleep,
        before_sleep=_before_sleep_log,
        retry_error_callback=_exhausted,
    )

    try:
        outcome = retrying(_attempt)
    except _BackoffCancelled:
        cause = last["outcome"].cause if last["outcome"] is not None else None
        logger.warning(f"Retry cancelled after {context.attempts} attempts")
        return OperationOutcome(OutcomeKind.CANCELLED, cause=cause, context=context)

    if outcome.kind is OutcomeKind.FATAL:
        logger.error(f"Non-retriable error on attempt {context.attempts}: {outcome.cause}")
    return OperationOutcome(outcome.kind, value=outcome.value, cause=outcome.cause, context=context)
