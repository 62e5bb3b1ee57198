"""Serialisable contracts."""

from mabletools.contracts.strategy import (
    BottomUp,
    MinTrace,
    ReconciliationStrategy,
    Unreconciled,
    parse_strategy,
)

__all__ = [
    "BottomUp",
    "MinTrace",
    "ReconciliationStrategy",
    "Unreconciled",
    "parse_strategy",
]
