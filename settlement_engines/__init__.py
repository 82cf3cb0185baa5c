"""
Pure calculation engines: payment allocation and aging.

Engines take plain values and return frozen results.  They never touch the
database or the clock; the services in ``settlement_services`` feed them.
"""

from settlement_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgingBuckets,
    AgingCalculator,
    AgingItem,
    buckets_from_boundaries,
)
from settlement_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationMethod,
    AllocationResult,
    AllocationTarget,
)
from settlement_engines.tracer import traced_engine

__all__ = [
    "AgeBucket",
    "AgingBuckets",
    "AgingCalculator",
    "AgingItem",
    "STANDARD_BUCKETS",
    "buckets_from_boundaries",
    "AllocationEngine",
    "AllocationLine",
    "AllocationMethod",
    "AllocationResult",
    "AllocationTarget",
    "traced_engine",
]
