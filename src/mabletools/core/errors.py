"""Core error types with rich context.

Every failure raised by mabletools is one of the classes below. All of them
are fatal: they describe a violated structural or mathematical precondition,
so nothing is retried and no partial reconciliation is returned.
"""

from __future__ import annotations

from typing import Any


class MableToolsError(Exception):
    """Base exception with rich context.

    Subclasses set ``error_code`` and a default ``fix_hint``; the ``context``
    dict carries the values that broke the precondition (keys, level masks,
    eigenvalues, ...).
    """

    error_code: str = "E_UNKNOWN"
    fix_hint: str = ""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        fix_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if fix_hint:
            self.fix_hint = fix_hint

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f"(context: {self.context})")
        if self.fix_hint:
            parts.append(f"[hint: {self.fix_hint}]")
        return " ".join(parts)


# ---------------------------
# Model table structure
# ---------------------------


class InvalidResponseError(MableToolsError):
    """Model columns do not share a single response variable."""

    error_code = "E_INVALID_RESPONSE"
    fix_hint = "Store models of different response variables in separate mables"


class NonUniqueKeyError(MableToolsError):
    """Key variables do not uniquely identify each row."""

    error_code = "E_NON_UNIQUE_KEY"
    fix_hint = "Add the missing key variable(s) so every row has a distinct key"


class EmptyModelTableError(MableToolsError):
    """An operation would leave the table without any model column."""

    error_code = "E_EMPTY_MODEL_TABLE"
    fix_hint = "Convert to a DataFrame with as_frame() before removing all models"


# ---------------------------
# Reconciliation preconditions
# ---------------------------


class DisjointHierarchyError(MableToolsError):
    """Key structure does not describe a single nested/grouped hierarchy."""

    error_code = "E_DISJOINT_HIERARCHY"
    fix_hint = "Aggregate every key variable with more than one level (see aggregate_key)"


class TemporalHierarchyError(MableToolsError):
    """Nodes were forecast at differing intervals or horizons."""

    error_code = "E_TEMPORAL_HIERARCHY"
    fix_hint = "Reconciliation of temporal hierarchies is not supported"


class NonNormalForecastError(MableToolsError):
    """A forecast distribution is not normal where normality is required."""

    error_code = "E_NON_NORMAL_FORECAST"
    fix_hint = "Reconciliation of non-normal forecasts is not supported"


class IllConditionedWeightError(MableToolsError):
    """The reconciliation weight matrix is not positive definite."""

    error_code = "E_ILL_CONDITIONED_WEIGHT"
    fix_hint = "Use method='mint_shrink' or 'wls_var', or check for collinear residuals"


class UnknownMethodError(MableToolsError):
    """Requested reconciliation method does not exist."""

    error_code = "E_UNKNOWN_METHOD"
    fix_hint = "Use one of: ols, wls_var, wls_struct, mint_cov, mint_shrink"


# Error registry for lookup
ERROR_REGISTRY: dict[str, type[MableToolsError]] = {
    cls.error_code: cls
    for cls in (
        InvalidResponseError,
        NonUniqueKeyError,
        EmptyModelTableError,
        DisjointHierarchyError,
        TemporalHierarchyError,
        NonNormalForecastError,
        IllConditionedWeightError,
        UnknownMethodError,
    )
}


def get_error_class(error_code: str) -> type[MableToolsError]:
    """Get error class by code."""
    return ERROR_REGISTRY.get(error_code, MableToolsError)
