"""Reconciliation configuration.

A single frozen config describes how a min_trace reconciliation is computed.
Model columns carry a serialisable tag (see ``mabletools.contracts``) that is
turned into this config when the column is forecast.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mabletools.core.errors import UnknownMethodError

MinTraceMethod = Literal["ols", "wls_var", "wls_struct", "mint_cov", "mint_shrink"]

MIN_TRACE_METHODS: tuple[str, ...] = (
    "wls_var",
    "ols",
    "wls_struct",
    "mint_cov",
    "mint_shrink",
)


@dataclass(frozen=True)
class ReconciliationConfig:
    """Configuration for minimum trace reconciliation.

    Args:
        method: Weighting scheme for the projection
            - ols: identity weights
            - wls_var: diagonal of the residual covariance
            - wls_struct: number of series aggregated by each node
            - mint_cov: full residual covariance
            - mint_shrink: covariance shrunk towards its diagonal
        sparse: Use the sparse solver. ``None`` probes for scipy.sparse
            each time the config is resolved.
        pd_tolerance: Smallest eigenvalue accepted for the weight matrix
    """

    method: MinTraceMethod = "wls_var"
    sparse: bool | None = None
    pd_tolerance: float = 1e-8

    def __post_init__(self) -> None:
        if self.method not in MIN_TRACE_METHODS:
            raise UnknownMethodError(
                f"Unknown reconciliation method '{self.method}'",
                context={"method": self.method, "available": list(MIN_TRACE_METHODS)},
            )
        if self.pd_tolerance < 0:
            raise ValueError(f"pd_tolerance must be non-negative, got {self.pd_tolerance}")

    @classmethod
    def ols(cls, sparse: bool | None = None) -> ReconciliationConfig:
        """Identity weights; needs no residuals to be informative."""
        return cls(method="ols", sparse=sparse)

    @classmethod
    def structural(cls, sparse: bool | None = None) -> ReconciliationConfig:
        """Structural scaling by the number of aggregated series."""
        return cls(method="wls_struct", sparse=sparse)

    @classmethod
    def shrink(cls, sparse: bool | None = None) -> ReconciliationConfig:
        """Shrinkage covariance estimator, best for short residual histories."""
        return cls(method="mint_shrink", sparse=sparse)

    def resolve_sparse(self) -> bool:
        """Return the sparse flag, probing scipy.sparse when unset."""
        if self.sparse is not None:
            return self.sparse
        from mabletools.hierarchy.linalg import sparse_available

        return sparse_available()
