"""Derived metrics computed on demand from summary counters."""

from dataclasses import dataclass
from typing import Mapping


def rate(numerator: int, denominator: int) -> float:
    """Percentage of ``numerator`` over ``denominator``.

    A zero (or negative) denominator yields 0.0, never NaN or an error.
    """
    if denominator <= 0:
        return 0.0
    return (numerator / denominator) * 100


def approval_rate(approved: int, submitted: int) -> float:
    return rate(approved, submitted)


def conversion_rate(interested: int, total_calls: int) -> float:
    return rate(interested, total_calls)


@dataclass(frozen=True)
class Metric:
    """A rate derived from two counters.

    Attributes:
        name: Field name used for sorting and column lookup.
        label: Column header.
        numerator: Counter on top of the fraction.
        denominator: Counter below the fraction.
    """

    name: str
    label: str
    numerator: str
    denominator: str

    def compute(self, counters: Mapping[str, int]) -> float:
        return rate(counters.get(self.numerator, 0), counters.get(self.denominator, 0))
