"""Retry/backoff policy for model requests, as an explicit state machine.

States::

    ATTEMPTING(n) --success----------------------------> SUCCEEDED
    ATTEMPTING(n) --429/5xx, n+1 < max--(wait 2^n)-----> ATTEMPTING(n+1)
    ATTEMPTING(n) --429/5xx, n+1 == max----------------> FAILED_TRANSIENT
    ATTEMPTING(n) --other status / transport error-----> FAILED_FATAL

Transport-level exceptions are not retried. Only HTTP-status-classified
failures are.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class Phase(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_TRANSIENT = "failed_transient"
    FAILED_FATAL = "failed_fatal"


@dataclass(frozen=True)
class RetryState:
    phase: Phase = Phase.ATTEMPTING
    attempt: int = 0  # zero-based index of the current/last attempt
    delay_seconds: float = 0.0  # wait before the next attempt, ATTEMPTING only
    last_status: int | None = None
    last_error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.phase is not Phase.ATTEMPTING


def is_transient_status(status: int) -> bool:
    return status == 429 or status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def backoff(self, attempt: int) -> float:
        return self.base_seconds * (2**attempt)

    def start(self) -> RetryState:
        return RetryState()

    def on_success(self, state: RetryState) -> RetryState:
        _require_attempting(state)
        return replace(state, phase=Phase.SUCCEEDED, delay_seconds=0.0)

    def on_status(self, state: RetryState, status: int, message: str) -> RetryState:
        _require_attempting(state)
        if not is_transient_status(status):
            return replace(
                state,
                phase=Phase.FAILED_FATAL,
                delay_seconds=0.0,
                last_status=status,
                last_error=message,
            )
        if state.attempt + 1 >= self.max_attempts:
            return replace(
                state,
                phase=Phase.FAILED_TRANSIENT,
                delay_seconds=0.0,
                last_status=status,
                last_error=message,
            )
        return RetryState(
            phase=Phase.ATTEMPTING,
            attempt=state.attempt + 1,
            delay_seconds=self.backoff(state.attempt),
            last_status=status,
            last_error=message,
        )

    def on_transport_error(self, state: RetryState, message: str) -> RetryState:
        _require_attempting(state)
        return replace(
            state,
            phase=Phase.FAILED_FATAL,
            delay_seconds=0.0,
            last_status=None,
            last_error=message,
        )


def _require_attempting(state: RetryState) -> None:
    if state.terminal:
        raise ValueError(f"No transitions out of terminal state {state.phase.value}")
