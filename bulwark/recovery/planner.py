"""
recovery/planner.py - Turn a policy into a recovery decision

Module 2: Recovery Policies

plan_recovery() is pure: it reads the policy and the controller's attempt
count and says what to do next. The controller owns the sleeping and the
state transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, assert_never

from .policies import (
    RESET_SETTLE_DELAY,
    CustomRecovery,
    NoRecovery,
    RecoverFn,
    RecoveryPolicy,
    ResetRecovery,
    RetryRecovery,
)


class RecoveryAction(str, Enum):
    """What the controller should do after a fault."""
    NONE = "none"            # Stay faulted, no scheduled action
    RETRY = "retry"          # Sleep, then retry()
    RESET = "reset"          # Sleep, then reset()
    CUSTOM = "custom"        # Await recover_fn, retry() on True
    EXHAUSTED = "exhausted"  # Retry ceiling reached, stay faulted


@dataclass(frozen=True)
class RecoveryDecision:
    """Result of planning a recovery."""

    action: RecoveryAction
    delay: float = 0.0
    attempt: int = 0
    recover_fn: Optional[RecoverFn] = None

    @property
    def schedules_work(self) -> bool:
        return self.action not in (RecoveryAction.NONE, RecoveryAction.EXHAUSTED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "delay": self.delay,
            "attempt": self.attempt,
        }


def plan_recovery(policy: RecoveryPolicy, attempt_count: int) -> RecoveryDecision:
    """
    Plan the next recovery step.

    Args:
        policy: Active recovery policy
        attempt_count: Retries already performed since the last reset

    Returns:
        RecoveryDecision for the controller to execute
    """
    match policy:
        case NoRecovery():
            return RecoveryDecision(action=RecoveryAction.NONE)

        case RetryRecovery():
            if attempt_count >= policy.max_attempts:
                return RecoveryDecision(
                    action=RecoveryAction.EXHAUSTED,
                    attempt=attempt_count,
                )
            attempt = attempt_count + 1
            return RecoveryDecision(
                action=RecoveryAction.RETRY,
                delay=policy.delay_for_attempt(attempt),
                attempt=attempt,
            )

        case ResetRecovery():
            return RecoveryDecision(
                action=RecoveryAction.RESET,
                delay=RESET_SETTLE_DELAY,
            )

        case CustomRecovery():
            return RecoveryDecision(
                action=RecoveryAction.CUSTOM,
                recover_fn=policy.recover_fn,
            )

        case _:
            assert_never(policy)
