"""
recovery/policies.py - Recovery policy variants

Module 2: Recovery Policies

Policies are immutable and carry no mutable state. Attempt counters and the
in-progress flag live on the controller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from bulwark.core.exceptions import PolicyConfigurationError


# Settle delay before a reset is applied (seconds)
RESET_SETTLE_DELAY = 0.1

RecoverFn = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class NoRecovery:
    """No automatic action. The boundary stays faulted until retried or reset."""

    def __str__(self) -> str:
        return "NoRecovery()"


@dataclass(frozen=True)
class RetryRecovery:
    """
    Re-execute the existing producer after a delay.

    Attributes:
        max_attempts: Retries allowed before staying faulted (>= 1)
        base_delay: Delay before the first retry, in seconds
        use_backoff: Double the delay for each subsequent attempt
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    use_backoff: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise PolicyConfigurationError(
                f"max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.base_delay < 0:
            raise PolicyConfigurationError(
                f"base_delay must be >= 0, got {self.base_delay}"
            )

    def delay_for_attempt(self, attempt: int) -> float:
        """
        Delay before the given attempt (1-indexed).

        With backoff: base_delay * 2^(attempt-1). Without: base_delay.
        """
        if attempt < 1:
            raise PolicyConfigurationError(f"attempt is 1-indexed, got {attempt}")
        if not self.use_backoff:
            return self.base_delay
        return self.base_delay * (1 << (attempt - 1))

    def __str__(self) -> str:
        return (
            f"RetryRecovery(max_attempts={self.max_attempts}, "
            f"base_delay={self.base_delay}, use_backoff={self.use_backoff})"
        )


@dataclass(frozen=True)
class ResetRecovery:
    """Clear the fault after a short settle delay and re-create the producer."""

    def __str__(self) -> str:
        return "ResetRecovery()"


@dataclass(frozen=True)
class CustomRecovery:
    """
    Delegate recovery to caller logic.

    recover_fn returns True to retry, False to stay faulted. A raising
    recover_fn counts as False.
    """

    recover_fn: RecoverFn

    def __str__(self) -> str:
        return "CustomRecovery()"


RecoveryPolicy = Union[NoRecovery, RetryRecovery, ResetRecovery, CustomRecovery]
