"""
recovery/ - Recovery policies

Closed set of recovery policies a boundary can run after a fault, and the
pure planning step that turns (policy, attempt count) into a decision.
"""

from .policies import (
    RESET_SETTLE_DELAY,
    NoRecovery,
    RetryRecovery,
    ResetRecovery,
    CustomRecovery,
    RecoveryPolicy,
    RecoverFn,
)

from .planner import (
    RecoveryAction,
    RecoveryDecision,
    plan_recovery,
)

__all__ = [
    # Policies
    "RESET_SETTLE_DELAY",
    "NoRecovery",
    "RetryRecovery",
    "ResetRecovery",
    "CustomRecovery",
    "RecoveryPolicy",
    "RecoverFn",
    # Planner
    "RecoveryAction",
    "RecoveryDecision",
    "plan_recovery",
]
