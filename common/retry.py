"""
common/retry.py

Fixed-interval retry policy shared by the orchestrator and the backend client.
Each retryable operation owns a RetryState; the policy only decides.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RetryState:
    """Attempt counter for one retryable operation. limit=None means unbounded."""

    attempt: int = 0
    limit: Optional[int] = None

    def record_failure(self) -> None:
        self.attempt += 1

    def reset(self) -> None:
        self.attempt = 0


class RetryPolicy:
    """Constant-delay retry policy with an optional attempt limit."""

    def __init__(self, delay_s: float, limit: Optional[int] = None) -> None:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0 or None")
        self.delay_s = delay_s
        self.limit = limit

    def next_delay(self, attempt: int) -> float:
        # Constant interval per failure class; attempt is accepted for API symmetry.
        return self.delay_s

    def should_retry(self, state: RetryState) -> bool:
        if state.limit is None:
            return True
        return state.attempt < state.limit

    def new_state(self) -> RetryState:
        return RetryState(limit=self.limit)

    def __repr__(self) -> str:
        return f"RetryPolicy(delay_s={self.delay_s}, limit={self.limit})"
