import dataclasses

import pytest

from wip_core.breakdown import ZERO, CostBreakdown, add_breakdowns, sum_breakdown, sum_breakdowns


def test_sum_breakdown():
    assert sum_breakdown(CostBreakdown(labor=100, material=25.5, other=4.5)) == 130
    assert sum_breakdown(ZERO) == 0


def test_add_breakdowns_is_component_wise():
    a = CostBreakdown(labor=1, material=2, other=3)
    b = CostBreakdown(labor=10, material=20, other=30)
    assert add_breakdowns(a, b) == CostBreakdown(labor=11, material=22, other=33)
    assert a + b == add_breakdowns(b, a)


def test_sum_breakdowns_starts_from_zero():
    assert sum_breakdowns([]) == ZERO
    parts = [CostBreakdown(labor=5), CostBreakdown(material=7), CostBreakdown(other=1)]
    assert sum_breakdowns(parts) == CostBreakdown(labor=5, material=7, other=1)
    assert sum_breakdowns(parts).total == 13


def test_breakdowns_are_immutable():
    b = CostBreakdown(labor=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        b.labor = 2
