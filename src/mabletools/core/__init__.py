"""Core module - errors, configuration and forecast records."""

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

__all__ = [
    # Config
    "ReconciliationConfig",
    # Records
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
