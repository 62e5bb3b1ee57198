"""Hierarchical forecast reconciliation.

This module provides the aggregation key structure of a mable, summation
matrix construction, and the minimum trace and bottom-up reconciliation
strategies.

Example:
    >>> from mabletools.hierarchy import AGGREGATED, min_trace, reconcile
    >>>
    >>> # Tag a model column; nothing is computed yet
    >>> mbl = reconcile(mbl, arima=lambda m: min_trace(m, method="mint_shrink"))
    >>>
    >>> # Forecasting reconciles every node
    >>> fc = mbl.forecast(h=8)
"""

from __future__ import annotations

from .aggregation import aggregate_key
from .evaluator import CoherenceReport, CoherenceViolation, check_coherence
from .keys import AGGREGATED, KeyData, is_aggregated
from .reconciliation import (
    bottom_up,
    min_trace,
    reconcile,
    reconcile_forecasts,
    tag_reconciliation,
)
from .structure import HierarchyForest, build_smat, build_smat_rows

__all__ = [
    # Key structure
    "AGGREGATED",
    "KeyData",
    "is_aggregated",
    "aggregate_key",
    # Summation matrix
    "HierarchyForest",
    "build_smat",
    "build_smat_rows",
    # Reconciliation
    "bottom_up",
    "min_trace",
    "reconcile",
    "reconcile_forecasts",
    "tag_reconciliation",
    # Evaluation
    "CoherenceReport",
    "CoherenceViolation",
    "check_coherence",
]
