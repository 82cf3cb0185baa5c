"""
Module: settlement_engines.allocation
Responsibility:
    Split one payment amount across a party's open ledger entries.  FIFO
    (oldest entry first) is the engine's default; SPECIFIC pays targets in
    caller-designated priority order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel/domain and logging.

Invariants enforced:
    - Conservation: total_allocated + unallocated == source_amount, exactly.
    - No target receives more than its eligible amount (its amount due).
    - Deterministic: FIFO orders by (date, sequence), so equal dates break
      ties by creation order and replays produce identical splits.
    - Exact Decimal arithmetic; sequential allocation never rounds.

Failure modes:
    - ValueError on a non-positive source amount or a negative eligible
      amount.
    - ValueError on an unknown allocation method.

Usage:
    from settlement_engines.allocation import AllocationEngine, AllocationTarget

    result = AllocationEngine().allocate(
        amount=Decimal("150"),
        targets=[
            AllocationTarget(target_id=a.id, eligible_amount=Decimal("100"), date=d1, sequence=1),
            AllocationTarget(target_id=b.id, eligible_amount=Decimal("100"), date=d1, sequence=2),
        ],
    )
    # result.lines -> 100 to a, 50 to b; result.unallocated -> 0
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.values import ZERO
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationMethod(str, Enum):
    """Order in which open entries receive money."""

    FIFO = "fifo"  # Oldest first by date, then creation sequence
    SPECIFIC = "specific"  # Caller-designated priority order


@dataclass(frozen=True)
class AllocationTarget:
    """
    An open ledger entry that can receive money.

    Guarantees:
        - ``eligible_amount`` is non-negative.
    """

    target_id: str | UUID
    eligible_amount: Decimal
    date: date | None = None
    sequence: int = 0
    priority: int = 0  # For SPECIFIC (lower = paid first)

    def __post_init__(self) -> None:
        if self.eligible_amount < ZERO:
            raise ValueError(
                f"Target {self.target_id} has negative eligible amount {self.eligible_amount}"
            )


@dataclass(frozen=True)
class AllocationLine:
    """
    Result of allocation to a single target.

    Guarantees:
        - ``allocated + remaining == eligible_amount``.
    """

    target_id: str | UUID
    allocated: Decimal
    remaining: Decimal

    @property
    def is_fully_allocated(self) -> bool:
        return self.remaining == ZERO


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation result.

    Guarantees:
        - ``total_allocated + unallocated == source_amount``.
        - ``lines`` follow the order money was applied, including targets
          that received nothing.
    """

    source_amount: Decimal
    method: AllocationMethod
    lines: tuple[AllocationLine, ...]
    total_allocated: Decimal
    unallocated: Decimal

    @property
    def is_fully_allocated(self) -> bool:
        """True if the entire source amount went to targets."""
        return self.unallocated == ZERO

    @property
    def funded_lines(self) -> tuple[AllocationLine, ...]:
        """Lines that actually received money, in application order."""
        return tuple(line for line in self.lines if line.allocated > ZERO)

    @property
    def allocation_count(self) -> int:
        return len(self.funded_lines)


class AllocationEngine:
    """
    Allocate a payment across open entries.

    Contract:
        Pure function of its inputs.  No I/O, no database access, no clock.
    Non-goals:
        - Does not decide what happens to ``unallocated``; the payment
          service turns it into standing credit.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("amount", "targets", "method"))
    def allocate(
        self,
        amount: Decimal,
        targets: Sequence[AllocationTarget],
        method: AllocationMethod = AllocationMethod.FIFO,
    ) -> AllocationResult:
        """
        Allocate ``amount`` to ``targets`` using ``method``.

        Raises:
            ValueError: non-positive amount or unknown method.
        """
        if amount <= ZERO:
            raise ValueError(f"Allocation amount must be positive, got {amount}")

        logger.info("allocation_started", extra={
            "amount": str(amount),
            "method": method.value,
            "target_count": len(targets),
        })

        match method:
            case AllocationMethod.FIFO:
                ordered = sorted(targets, key=lambda t: (t.date or date.min, t.sequence))
            case AllocationMethod.SPECIFIC:
                ordered = sorted(targets, key=lambda t: t.priority)
            case _:
                logger.error("allocation_unknown_method", extra={"method": str(method)})
                raise ValueError(f"Unknown allocation method: {method}")

        return self._allocate_sequential(amount, ordered, method)

    def _allocate_sequential(
        self,
        amount: Decimal,
        ordered_targets: Sequence[AllocationTarget],
        method: AllocationMethod,
    ) -> AllocationResult:
        """Each target receives min(remaining, eligible) until the amount runs out."""
        remaining_to_allocate = amount
        lines: list[AllocationLine] = []

        for target in ordered_targets:
            to_allocate = min(remaining_to_allocate, target.eligible_amount)
            remaining_to_allocate -= to_allocate
            lines.append(
                AllocationLine(
                    target_id=target.target_id,
                    allocated=to_allocate,
                    remaining=target.eligible_amount - to_allocate,
                )
            )

        total_allocated = sum((line.allocated for line in lines), ZERO)
        unallocated = remaining_to_allocate

        assert total_allocated + unallocated == amount, (
            f"Allocation conservation violated: "
            f"{total_allocated} + {unallocated} != {amount}"
        )

        logger.info("allocation_completed", extra={
            "method": method.value,
            "source_amount": str(amount),
            "total_allocated": str(total_allocated),
            "unallocated": str(unallocated),
            "targets_funded": sum(1 for line in lines if line.allocated > ZERO),
            "line_count": len(lines),
        })

        return AllocationResult(
            source_amount=amount,
            method=method,
            lines=tuple(lines),
            total_allocated=total_allocated,
            unallocated=unallocated,
        )
