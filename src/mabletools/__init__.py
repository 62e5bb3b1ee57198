"""mabletools - model tables and hierarchical forecast reconciliation.

A mable (model table) holds one fitted model per series of a keyed panel.
Tagging a model column with a reconciliation strategy makes its forecasts
coherent across the aggregation hierarchy described by the key.

Basic usage:
    >>> from mabletools import build_mable, reconcile, min_trace
    >>> mbl = build_mable(fits, key=["state", "region"], model=["ets"])
    >>> mbl = reconcile(mbl, ets=lambda m: min_trace(m, method="mint_shrink"))
    >>> fc = mbl.forecast(h=12)
"""

__version__ = "0.3.0"

from mabletools.contracts.strategy import BottomUp, MinTrace, Unreconciled
from mabletools.core.config import ReconciliationConfig
from mabletools.core.errors import (
    DisjointHierarchyError,
    EmptyModelTableError,
    IllConditionedWeightError,
    InvalidResponseError,
    MableToolsError,
    NonNormalForecastError,
    NonUniqueKeyError,
    TemporalHierarchyError,
    UnknownMethodError,
)
from mabletools.core.types import ForecastDistribution
from mabletools.hierarchy import (
    AGGREGATED,
    KeyData,
    aggregate_key,
    bottom_up,
    build_smat,
    build_smat_rows,
    check_coherence,
    is_aggregated,
    min_trace,
    reconcile,
    reconcile_forecasts,
    tag_reconciliation,
)
from mabletools.mable import (
    ModelColumn,
    ModelTable,
    as_mable,
    build_mable,
    build_model_table,
    coerce_to_plain,
    is_mable,
    key_data,
    key_variables,
)
from mabletools.models import ModelHandle

__all__ = [
    "__version__",
    # Model table
    "ModelTable",
    "ModelColumn",
    "ModelHandle",
    "build_mable",
    "build_model_table",
    "as_mable",
    "is_mable",
    "coerce_to_plain",
    "key_variables",
    "key_data",
    # Hierarchy
    "AGGREGATED",
    "KeyData",
    "is_aggregated",
    "aggregate_key",
    "build_smat",
    "build_smat_rows",
    "check_coherence",
    # Reconciliation
    "reconcile",
    "reconcile_forecasts",
    "tag_reconciliation",
    "min_trace",
    "bottom_up",
    "ReconciliationConfig",
    "Unreconciled",
    "MinTrace",
    "BottomUp",
    "ForecastDistribution",
    # Errors
    "MableToolsError",
    "InvalidResponseError",
    "NonUniqueKeyError",
    "EmptyModelTableError",
    "DisjointHierarchyError",
    "TemporalHierarchyError",
    "NonNormalForecastError",
    "IllConditionedWeightError",
    "UnknownMethodError",
]
