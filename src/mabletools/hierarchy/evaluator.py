"""Coherence checking for hierarchical forecasts.

Detects aggregate nodes whose forecast mean differs from the sum of the
bottom-level forecasts it covers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np

from mabletools.core.types import ForecastDistribution

from .keys import KeyData
from .structure import HierarchyForest


@dataclass(frozen=True)
class CoherenceViolation:
    """Single coherence violation record.

    Attributes:
        parent_node: Label of the aggregate node
        child_nodes: Labels of its direct children
        expected_value: Sum of the bottom-level forecasts it covers
        actual_value: Forecast of the aggregate node
        difference: Absolute difference between expected and actual
        step: Forecast horizon step (1-based)
    """

    parent_node: str
    child_nodes: list[str]
    expected_value: float
    actual_value: float
    difference: float
    step: int


@dataclass(frozen=True)
class CoherenceReport:
    """Result of a coherence check."""

    violations: list[CoherenceViolation] = field(default_factory=list)
    total_checks: int = 0
    max_difference: float = 0.0

    @property
    def is_coherent(self) -> bool:
        return not self.violations

    @property
    def violation_rate(self) -> float:
        return len(self.violations) / max(self.total_checks, 1)

    def to_dict(self) -> dict:
        return {
            "is_coherent": self.is_coherent,
            "total_checks": self.total_checks,
            "max_difference": self.max_difference,
            "violation_rate": self.violation_rate,
            "violations": [
                {
                    "parent_node": v.parent_node,
                    "child_nodes": v.child_nodes,
                    "expected_value": v.expected_value,
                    "actual_value": v.actual_value,
                    "difference": v.difference,
                    "step": v.step,
                }
                for v in self.violations
            ],
        }


def check_coherence(
    forecasts: Mapping[tuple, ForecastDistribution],
    key_data: KeyData,
    tolerance: float = 1e-6,
) -> CoherenceReport:
    """Check that aggregate forecasts equal the sum of their bottom-level series.

    Args:
        forecasts: Forecast per node key, as returned by ``reconcile_forecasts``
        key_data: Aggregation key structure
        tolerance: Largest accepted absolute difference

    Returns:
        CoherenceReport listing every violating (node, step)
    """
    forest = HierarchyForest.from_key_data(key_data)
    nodes = key_data.node_ids()
    missing = [n for n in nodes if n not in forecasts]
    if missing:
        raise ValueError(f"Missing forecasts for {len(missing)} node(s), e.g. {missing[0]}")

    means = np.vstack([forecasts[n].mean for n in nodes])
    expected = forest.smat @ means[forest.leaf_rows]
    diff = np.abs(expected - means)

    violations: list[CoherenceViolation] = []
    total_checks = 0
    for node in forest.nodes:
        if node.is_leaf:
            continue
        children = [forest.label(c) for c in node.children]
        for step in range(means.shape[1]):
            total_checks += 1
            if diff[node.position, step] > tolerance:
                violations.append(CoherenceViolation(
                    parent_node=forest.label(node.position),
                    child_nodes=children,
                    expected_value=float(expected[node.position, step]),
                    actual_value=float(means[node.position, step]),
                    difference=float(diff[node.position, step]),
                    step=step + 1,
                ))

    return CoherenceReport(
        violations=violations,
        total_checks=total_checks,
        max_difference=float(diff.max()) if diff.size else 0.0,
    )


__all__ = ["CoherenceReport", "CoherenceViolation", "check_coherence"]
