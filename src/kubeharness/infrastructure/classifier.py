"""Classification of Kubernetes API errors.

Maps an error raised by a control-plane call onto one of three classes:
CONFLICT (object already exists), RETRYABLE (transient) or FATAL. Anything
not positively identified as transient is FATAL.
"""

from __future__ import annotations

import json
from typing import Optional

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import (
    ConnectTimeoutError,
    MaxRetryError,
    NewConnectionError,
    ProtocolError,
    ReadTimeoutError,
)

from kubeharness.domain.models.outcome import ErrorClass, OperationOutcome

# metav1.StatusReason values reported in the Status body
REASON_ALREADY_EXISTS = "AlreadyExists"
RETRYABLE_REASONS = frozenset(
    {
        "Conflict",  # optimistic-concurrency conflict on write
        "Timeout",
        "ServerTimeout",
        "TooManyRequests",
        "InternalError",
        "ServiceUnavailable",
    }
)
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_TRANSPORT_ERRORS = (
    ProtocolError,
    ReadTimeoutError,
    ConnectTimeoutError,
    NewConnectionError,
    ConnectionResetError,
    ConnectionAbortedError,
    BrokenPipeError,
    TimeoutError,
)


def status_reason(exception: ApiException) -> Optional[str]:
    """Extract the Status reason from an ApiException body, if present."""
    body = exception.body
    if not body:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        status = json.loads(body)
    except (TypeError, ValueError):
        return None
    if isinstance(status, dict):
        return status.get("reason")
    return None


def _has_retry_after(exception: ApiException) -> bool:
    headers = exception.headers or {}
    return any(str(key).lower() == "retry-after" for key in headers)


def _classify_api_exception(exception: ApiException) -> ErrorClass:
    reason = status_reason(exception)
    if reason == REASON_ALREADY_EXISTS:
        return ErrorClass.CONFLICT
    if reason in RETRYABLE_REASONS:
        return ErrorClass.RETRYABLE
    if exception.status in RETRYABLE_STATUS_CODES:
        return ErrorClass.RETRYABLE
    # Server explicitly asked us to come back later
    if _has_retry_after(exception):
        return ErrorClass.RETRYABLE
    return ErrorClass.FATAL


def classify_api_error(exception: BaseException) -> ErrorClass:
    """Classify an error returned by a Kubernetes API call.

    Args:
        exception: Error raised by a create/read call

    Returns:
        CONFLICT if the object already exists, RETRYABLE for transient
        server or transport conditions, FATAL otherwise
    """
    if isinstance(exception, ApiException):
        return _classify_api_exception(exception)
    if isinstance(exception, MaxRetryError):
        # urllib3 gave up on its own retries; judge by the underlying reason
        if exception.reason is not None and exception.reason is not exception:
            return classify_api_error(exception.reason)
        return ErrorClass.FATAL
    if isinstance(exception, _TRANSPORT_ERRORS):
        return ErrorClass.RETRYABLE
    return ErrorClass.FATAL


def outcome_for_error(exception: BaseException) -> OperationOutcome:
    """Turn a failed call into the matching OperationOutcome."""
    error_class = classify_api_error(exception)
    if error_class is ErrorClass.CONFLICT:
        return OperationOutcome.already_exists(exception)
    if error_class is ErrorClass.RETRYABLE:
        return OperationOutcome.retryable(exception)
    return OperationOutcome.fatal(exception)
