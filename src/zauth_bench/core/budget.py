"""Spend accounting against a fixed USDC cap.

`can_spend` is a pre-flight gate; `record_spend` commits what was actually
paid. The real cost of a paid call is only known after it returns, so the
recorded total can end up slightly above the cap when an estimate
under-predicts. That overshoot is accepted.

Every call site runs sequentially within one run, so there is no locking.
If queries are ever issued in parallel, the check+commit pair has to become a
single compare-and-swap on the counter, otherwise two near-simultaneous
approvals can jointly overshoot the cap.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class BudgetTracker:
    cap_usdc: float
    spent_usdc: float = 0.0

    def __post_init__(self) -> None:
        if self.cap_usdc <= 0:
            raise ValueError("Budget must be greater than 0")

    def can_spend(self, estimated_amount: float) -> bool:
        return self.spent_usdc + estimated_amount <= self.cap_usdc

    def record_spend(self, actual_amount: float) -> None:
        # Never clamps to the cap; negative amounts would break monotonicity.
        if actual_amount > 0:
            self.spent_usdc += actual_amount

    def remaining(self) -> float:
        return max(0.0, self.cap_usdc - self.spent_usdc)

    @property
    def exhausted(self) -> bool:
        return self.remaining() <= 0

    def summary(self) -> str:
        return (
            f"spent ${self.spent_usdc:.2f} of ${self.cap_usdc:.2f} "
            f"(${self.remaining():.2f} remaining)"
        )
