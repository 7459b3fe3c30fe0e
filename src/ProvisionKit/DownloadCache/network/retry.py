"""Bounded retries coupled to the network-availability circuit breaker.

Every HTTP attempt is reduced to an :class:`AttemptOutcome`:

- ``SUCCESS``: a recognised status (200/304) was handled.
- ``RETRYABLE``: a transport fault or a bad status; another attempt may help.
- ``FATAL``: a protocol violation that no retry or fallback can fix.

:func:`issue_request` drives the attempts with Tenacity, retrying on the
``RETRYABLE`` tag only. The budget comes from the availability service when
the sequence starts. When it runs out the outcome depends on what the
process already knows about the network:

- unchecked: latch ``KNOWN_DOWN`` and return an exhausted result so the
  caller falls back to the look-aside cache;
- known up: raise :class:`~ProvisionKit.DownloadCache.errors.TransportFault`
  or :class:`~ProvisionKit.DownloadCache.errors.BadResponseStatus`.

Example:
    >>> result = issue_request(client, "HEAD", uri, availability=service, handler=on_response)
    >>> if result.exhausted:
    ...     fall_back()
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import httpx
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from ProvisionKit.DownloadCache.availability import AvailabilityService, AvailabilityState
from ProvisionKit.DownloadCache.errors import BadResponseStatus, DownloadCacheError, TransportFault
from ProvisionKit.DownloadCache.network.policy import RECOGNIZED_STATUSES

logger = logging.getLogger(__name__)

#: Exceptions classified as transport faults (timeouts, resets, refused
#: connections, DNS failures surfaced as ConnectError, protocol violations)
TRANSPORT_ERRORS = (httpx.TransportError, httpx.DecodingError)


# ============================================================================
# Attempt Outcomes
# ============================================================================


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome:
    """Classified result of a single HTTP attempt."""

    kind: OutcomeKind
    value: Any = None
    reason: str = ""
    status_code: Optional[int] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Any = None, *, status_code: Optional[int] = None) -> "AttemptOutcome":
        return cls(OutcomeKind.SUCCESS, value=value, status_code=status_code)

    @classmethod
    def retryable(
        cls,
        reason: str,
        *,
        status_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> "AttemptOutcome":
        return cls(OutcomeKind.RETRYABLE, reason=reason, status_code=status_code, error=error)

    @classmethod
    def fatal(cls, error: BaseException) -> "AttemptOutcome":
        return cls(OutcomeKind.FATAL, reason=str(error), error=error)

    @property
    def is_retryable(self) -> bool:
        return self.kind is OutcomeKind.RETRYABLE


@dataclass(frozen=True)
class RequestResult:
    """Result of a whole retried call sequence.

    Attributes:
        outcome: Last attempt outcome
        attempts: Number of attempts made
        exhausted: True when the budget ran out and the caller should fall back
    """

    outcome: AttemptOutcome
    attempts: int
    exhausted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome.kind is OutcomeKind.SUCCESS

    @property
    def value(self) -> Any:
        return self.outcome.value


ResponseHandler = Callable[[httpx.Response], AttemptOutcome]


# ============================================================================
# Retry Driver
# ============================================================================


def _attempt(
    client: httpx.Client,
    method: str,
    uri: str,
    headers: Optional[Mapping[str, str]],
    availability: AvailabilityService,
    handler: ResponseHandler,
) -> AttemptOutcome:
    try:
        with client.stream(method, uri, headers=headers) as response:
            status = response.status_code
            if status not in RECOGNIZED_STATUSES:
                return AttemptOutcome.retryable(f"bad response code: {status}", status_code=status)
            availability.record(up=True)
            return handler(response)
    except TRANSPORT_ERRORS as exc:
        return AttemptOutcome.retryable(f"{type(exc).__name__}: {exc}", error=exc)


def _raise_exhausted(method: str, uri: str, outcome: AttemptOutcome, attempts: int) -> None:
    if outcome.status_code is not None:
        raise BadResponseStatus(
            f"HTTP {method} {uri} failed with bad response code: {outcome.status_code}",
            uri=uri,
            status_code=outcome.status_code,
            attempts=attempts,
        )
    raise TransportFault(
        f"HTTP {method} {uri} failed after {attempts} attempts: {outcome.reason}",
        uri=uri,
        attempts=attempts,
    ) from outcome.error


def issue_request(
    client: httpx.Client,
    method: str,
    uri: str,
    *,
    availability: AvailabilityService,
    handler: ResponseHandler,
    headers: Optional[Mapping[str, str]] = None,
    log: Optional[logging.Logger] = None,
    backoff_seconds: float = 0.25,
    backoff_max_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> RequestResult:
    """Issue ``method`` against ``uri`` until it succeeds or the budget runs out.

    Args:
        client: HTTPX client used for every attempt.
        method: ``HEAD`` for revalidation, ``GET`` for full downloads.
        uri: Absolute artifact URI.
        availability: Circuit breaker supplying the budget and latching state.
        handler: Called with each response carrying a recognised status while
            the body is still streamable; returns the attempt outcome.
        headers: Extra request headers (conditional validators).
        log: Logger for per-attempt diagnostics.
        backoff_seconds: Exponential backoff multiplier between attempts.
        backoff_max_seconds: Upper bound for a single wait.
        sleep: Sleep function (tests pass a no-op).

    Returns:
        RequestResult that either succeeded or is ``exhausted``.

    Raises:
        TransportFault: Budget exhausted on a network known to be up, last
            failure a transport fault.
        BadResponseStatus: Budget exhausted on a network known to be up, last
            failure a bad status.
        DownloadCacheError: Any ``FATAL`` outcome's error, re-raised as is, or a
            generic one when the outcome carries no error.
    """
    log = log or logger
    retry_limit = availability.retry_limit()
    attempts = 0

    def _call() -> AttemptOutcome:
        nonlocal attempts
        attempts += 1
        outcome = _attempt(client, method, uri, headers, availability, handler)
        if outcome.is_retryable:
            log.debug(
                "HTTP request attempt %d of %d failed: %s",
                attempts,
                retry_limit,
                outcome.reason,
                extra={"uri": uri, "method": method, "status_code": outcome.status_code},
            )
        return outcome

    controller = Retrying(
        retry=retry_if_result(lambda outcome: outcome.is_retryable),
        stop=stop_after_attempt(retry_limit),
        wait=wait_exponential(multiplier=backoff_seconds, max=backoff_max_seconds),
        sleep=sleep,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    outcome: AttemptOutcome = controller(_call)

    if outcome.kind is OutcomeKind.FATAL:
        if outcome.error is None:
            raise DownloadCacheError(f"HTTP {method} {uri} failed: {outcome.reason or 'fatal response'}")
        raise outcome.error
    if outcome.kind is OutcomeKind.SUCCESS:
        return RequestResult(outcome, attempts)

    state = availability.record(up=False)
    if state is AvailabilityState.KNOWN_UP:
        _raise_exhausted(method, uri, outcome, attempts)
    log.debug(
        "HTTP %s %s gave up after %d attempts; network treated as unavailable",
        method,
        uri,
        attempts,
        extra={"uri": uri, "availability": state.value},
    )
    return RequestResult(outcome, attempts, exhausted=True)


__all__ = [
    "TRANSPORT_ERRORS",
    "OutcomeKind",
    "AttemptOutcome",
    "RequestResult",
    "ResponseHandler",
    "issue_request",
]
