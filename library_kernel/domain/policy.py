"""
LendingPolicy -- the configurable limits of the circulation kernel.

Responsibility:
    Holds every number the kernel treats as policy rather than law: fee per
    overdue day, loan limits, loan period bounds, review comment length, the
    threshold for a "significant" inventory change, the lock timeout and the
    consistency guard's mode.

Architecture position:
    Kernel > Domain -- pure, frozen value object.  Built by
    ``library_config.get_active_policy()``; the kernel never reads files.

Invariants enforced:
    (none -- see library_kernel.invariants for the rules no policy may
    switch off)
"""

from dataclasses import dataclass
from decimal import Decimal

GUARD_MODE_CLAMP = "clamp"
GUARD_MODE_RAISE = "raise"
GUARD_MODES = (GUARD_MODE_CLAMP, GUARD_MODE_RAISE)


@dataclass(frozen=True)
class LendingPolicy:
    """
    Policy values for lending, reviews and inventory monitoring.

    The defaults are the values the circulation desk has always used:
    1.00 per overdue day, five concurrent loans, 1 to 30 day loans with
    14 days when unspecified, 1000-character review comments and a 10%
    threshold for significant inventory changes.
    """

    fee_per_day: Decimal = Decimal("1.00")
    max_active_loans: int = 5
    min_loan_days: int = 1
    max_loan_days: int = 30
    default_loan_days: int = 14
    max_comment_length: int = 1000
    significant_resize_ratio: Decimal = Decimal("0.10")
    lock_timeout_ms: int = 5000
    guard_mode: str = GUARD_MODE_CLAMP

    def __post_init__(self) -> None:
        if self.fee_per_day < 0:
            raise ValueError(f"fee_per_day must be >= 0, got {self.fee_per_day}")
        if self.max_active_loans < 1:
            raise ValueError(
                f"max_active_loans must be >= 1, got {self.max_active_loans}"
            )
        if not 1 <= self.min_loan_days <= self.max_loan_days:
            raise ValueError(
                "loan day bounds must satisfy 1 <= min_loan_days <= max_loan_days, "
                f"got {self.min_loan_days}..{self.max_loan_days}"
            )
        if not self.min_loan_days <= self.default_loan_days <= self.max_loan_days:
            raise ValueError(
                f"default_loan_days {self.default_loan_days} outside "
                f"{self.min_loan_days}..{self.max_loan_days}"
            )
        if self.max_comment_length < 1:
            raise ValueError(
                f"max_comment_length must be >= 1, got {self.max_comment_length}"
            )
        if self.significant_resize_ratio < 0:
            raise ValueError(
                "significant_resize_ratio must be >= 0, "
                f"got {self.significant_resize_ratio}"
            )
        if self.lock_timeout_ms < 1:
            raise ValueError(
                f"lock_timeout_ms must be >= 1, got {self.lock_timeout_ms}"
            )
        if self.guard_mode not in GUARD_MODES:
            raise ValueError(
                f"guard_mode must be one of {GUARD_MODES}, got {self.guard_mode!r}"
            )

    def accepts_period(self, days: int) -> bool:
        """True if a loan of ``days`` days is within the policy bounds."""
        return self.min_loan_days <= days <= self.max_loan_days
