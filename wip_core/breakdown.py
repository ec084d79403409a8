from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class CostBreakdown:
    labor: float = 0.0
    material: float = 0.0
    other: float = 0.0

    @property
    def total(self) -> float:
        return sum_breakdown(self)

    def __add__(self, other: "CostBreakdown") -> "CostBreakdown":
        if not isinstance(other, CostBreakdown):
            return NotImplemented
        return add_breakdowns(self, other)

    @classmethod
    def zero(cls) -> "CostBreakdown":
        return cls(0.0, 0.0, 0.0)


ZERO = CostBreakdown.zero()


def sum_breakdown(breakdown: CostBreakdown) -> float:
    """Sum all components of a cost breakdown."""
    return breakdown.labor + breakdown.material + breakdown.other


def add_breakdowns(a: CostBreakdown, b: CostBreakdown) -> CostBreakdown:
    """Add two breakdowns component-wise."""
    return CostBreakdown(
        labor=a.labor + b.labor,
        material=a.material + b.material,
        other=a.other + b.other,
    )


def sum_breakdowns(breakdowns: Iterable[CostBreakdown]) -> CostBreakdown:
    """Fold any number of breakdowns together, starting from zero."""
    result = ZERO
    for breakdown in breakdowns:
        result = add_breakdowns(result, breakdown)
    return result
