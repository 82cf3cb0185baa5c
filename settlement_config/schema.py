"""
Configuration schema for the settlement engine.

Frozen dataclasses, one per concern.  Field defaults match
``defaults.yaml``; every field is validated on construction so a bad
override fails at load time rather than in the middle of a payment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
)

from settlement_kernel.domain.values import PaymentMode

ROUNDING_MODES = frozenset({
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
})


@dataclass(frozen=True)
class AmountConfig:
    """Precision accepted at the boundary and rounding used for display."""

    decimal_places: int = 2
    display_rounding: str = ROUND_HALF_EVEN

    def __post_init__(self):
        if not 0 <= self.decimal_places <= 9:
            raise ValueError("amounts.decimal_places must be between 0 and 9")
        if self.display_rounding not in ROUNDING_MODES:
            raise ValueError(
                f"amounts.display_rounding must be one of {sorted(ROUNDING_MODES)}, "
                f"got '{self.display_rounding}'"
            )


@dataclass(frozen=True)
class AgingConfig:
    """Upper bounds of the first three aging buckets and the overdue threshold."""

    bucket_boundaries: tuple[int, int, int] = (30, 60, 90)
    overdue_after_days: int = 30

    def __post_init__(self):
        bounds = self.bucket_boundaries
        if len(bounds) != 3 or bounds[0] < 0 or not bounds[0] < bounds[1] < bounds[2]:
            raise ValueError(
                "aging.bucket_boundaries must be three increasing non-negative "
                f"integers, got {list(bounds)}"
            )
        if self.overdue_after_days < 0:
            raise ValueError("aging.overdue_after_days cannot be negative")


@dataclass(frozen=True)
class LockingConfig:
    party_lock_timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.party_lock_timeout_seconds <= 0:
            raise ValueError("locking.party_lock_timeout_seconds must be positive")


@dataclass(frozen=True)
class PaymentConfig:
    """Payment recording defaults and history paging limits."""

    default_mode: PaymentMode = PaymentMode.CASH
    page_size: int = 50
    max_page_size: int = 200
    top_outstanding_limit: int = 10

    def __post_init__(self):
        if self.default_mode is PaymentMode.CREDIT:
            raise ValueError("payments.default_mode cannot be 'credit'")
        if self.page_size < 1:
            raise ValueError("payments.page_size must be positive")
        if self.max_page_size < self.page_size:
            raise ValueError("payments.max_page_size must be >= payments.page_size")
        if self.top_outstanding_limit < 1:
            raise ValueError("payments.top_outstanding_limit must be positive")


@dataclass(frozen=True)
class SettlementConfig:
    """The complete runtime configuration."""

    config_id: str = "settlement-default"
    version: int = 1
    amounts: AmountConfig = field(default_factory=AmountConfig)
    aging: AgingConfig = field(default_factory=AgingConfig)
    locking: LockingConfig = field(default_factory=LockingConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    checksum: str = ""
