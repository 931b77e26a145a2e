"""
Bounded retry with fixed or linear backoff.

Each logical operation moves through ``Pending -> Attempting`` and ends in
``Success`` or ``Failed``. A failed attempt is followed by a backoff delay
and a new attempt until the attempt budget is spent. There is no jitter and
no exponential growth: group and page calls wait a flat delay, header
detection waits ``attempt * unit``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


class AttemptState(str, Enum):
    """States of a retried operation."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    FAILED = "failed"


class OperationCancelled(Exception):
    """Raised when a cancellation signal is seen at a suspension point."""

    pass


class RetriesExhausted(Exception):
    """
    Raised when every attempt of an operation failed.

    Attributes:
        label: Name of the operation, e.g. ``group 2``.
        attempts: Number of attempts made.
        last_error: Exception raised by the final attempt.
        last_status: Last HTTP-like status seen, if any.
    """

    def __init__(
        self,
        label: str,
        attempts: int,
        last_error: BaseException | None,
        last_status: int | None = None,
    ):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        self.last_status = last_status
        super().__init__(self._build_message())

    @property
    def is_connection_error(self) -> bool:
        return _is_connection_error(self.last_error)

    def _build_message(self) -> str:
        if self.is_connection_error:
            return (
                f"Unable to connect to the inference backend for {self.label} "
                f"after {self.attempts} attempts. Last error: {self.last_error}"
            )
        message = f"All {self.attempts} retry attempts failed for {self.label}."
        if self.last_status is not None:
            message += f" Last status: {self.last_status}."
        if self.last_error is not None:
            message += f" Last error: {self.last_error}"
        return message


class UnsuccessfulResponse(Exception):
    """Raised for an HTTP-shaped result reporting a failure status."""

    def __init__(self, status_code: int):
        super().__init__(f"Server returned {status_code}")
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget and backoff schedule.

    Attributes:
        max_attempts: Total attempts, including the first.
        delay_seconds: Flat delay, or the unit of a linear delay.
        linear: When True the wait before attempt ``n + 1`` is ``n * delay_seconds``.
    """

    max_attempts: int = 5
    delay_seconds: float = 15.0
    linear: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")

    def backoff(self, attempt: int) -> float:
        """Delay after the failed ``attempt`` (1-based)."""
        if self.linear:
            return attempt * self.delay_seconds
        return self.delay_seconds

    @classmethod
    def fixed(cls, max_attempts: int = 5, delay_seconds: float = 15.0) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, delay_seconds=delay_seconds)

    @classmethod
    def linear_backoff(cls, max_attempts: int = 3, unit_seconds: float = 3.0) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, delay_seconds=unit_seconds, linear=True)


def _is_connection_error(error: BaseException | None) -> bool:
    if error is None:
        return False
    if getattr(error, "is_connection_error", False):
        return True
    return isinstance(error, ConnectionError)


def _status_of(value: Any) -> int | None:
    status = getattr(value, "status_code", None)
    return status if isinstance(status, int) else None


def check_cancelled(cancel_event: asyncio.Event | None, label: str = "operation") -> None:
    """Raise ``OperationCancelled`` if the signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"Cancelled before {label}")


async def pause(
    seconds: float,
    cancel_event: asyncio.Event | None = None,
    sleep: SleepFunc = asyncio.sleep,
    label: str = "operation",
) -> None:
    """Wait ``seconds``, honouring the cancellation signal on both sides of the wait."""
    check_cancelled(cancel_event, label)
    if seconds > 0:
        await sleep(seconds)
    check_cancelled(cancel_event, label)


class RetryingTransport:
    """
    Runs async operations under a ``RetryPolicy``.

    Any exception from the operation counts as a failed attempt, except the
    ``fatal`` exception types and ``OperationCancelled``, which propagate
    immediately. An HTTP-shaped result (``status_code >= 400`` or ``ok`` is
    False) also counts as a failed attempt.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
        fatal: tuple[type[BaseException], ...] = (),
        cancel_event: asyncio.Event | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.fatal = fatal
        self.cancel_event = cancel_event
        self.state = AttemptState.PENDING
        self.attempts = 0

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """
        Invoke ``operation`` until it succeeds or the attempt budget is spent.

        Raises:
            RetriesExhausted: When the final attempt failed.
            OperationCancelled: When the cancellation signal is set.
        """
        self.state = AttemptState.PENDING
        self.attempts = 0
        last_error: BaseException | None = None
        last_status: int | None = None

        for attempt in range(1, self.policy.max_attempts + 1):
            check_cancelled(self.cancel_event, label)
            self.state = AttemptState.ATTEMPTING
            self.attempts = attempt
            try:
                result = await operation()
                status = _status_of(result)
                if (status is not None and status >= 400) or getattr(result, "ok", True) is False:
                    raise UnsuccessfulResponse(status or 0)
                self.state = AttemptState.SUCCESS
                if attempt > 1:
                    logger.info("%s succeeded on attempt %d", label, attempt)
                return result
            except OperationCancelled:
                self.state = AttemptState.FAILED
                raise
            except self.fatal:
                self.state = AttemptState.FAILED
                raise
            except Exception as e:
                last_error = e
                last_status = _status_of(e) or last_status
                if _is_connection_error(e):
                    logger.error(
                        "Connection failed on attempt %d for %s. Backend might be down.",
                        attempt,
                        label,
                    )
                else:
                    logger.warning("Attempt %d failed for %s. Error: %s", attempt, label, e)

            if attempt < self.policy.max_attempts:
                delay = self.policy.backoff(attempt)
                logger.info("Waiting %.1f seconds before retrying %s...", delay, label)
                await pause(delay, self.cancel_event, self.sleep, label)

        self.state = AttemptState.FAILED
        raise RetriesExhausted(label, self.attempts, last_error, last_status)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    label: str = "operation",
    sleep: SleepFunc = asyncio.sleep,
    fatal: tuple[type[BaseException], ...] = (),
    cancel_event: asyncio.Event | None = None,
) -> T:
    """Functional shortcut for ``RetryingTransport(...).run(operation, label)``."""
    transport = RetryingTransport(policy, sleep=sleep, fatal=fatal, cancel_event=cancel_event)
    return await transport.run(operation, label)
