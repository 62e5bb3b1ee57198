"""Linear algebra for minimum trace reconciliation.

Weight matrix estimation from in-sample residuals, the positive definiteness
check, and the two routes to the projection matrix ``P`` (so that ``S @ P``
maps base forecasts of every node onto coherent forecasts):

    dense:  P = (S' W^-1 S)^-1 S' W^-1
    sparse: P = J - J W U' (U W U')^-1 U

where ``J`` selects the bottom-level rows and ``U = [I | -S_agg]`` (columns
in node order) encodes the aggregation constraints. Both give the same
projection; the sparse route avoids inverting ``W`` and exploits the
sparsity of ``S`` for large hierarchies.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Sequence

import numpy as np
import pandas as pd

from mabletools.core.errors import IllConditionedWeightError, UnknownMethodError

logger = logging.getLogger(__name__)


def sparse_available() -> bool:
    """Whether the scipy.sparse solver can be used for the projection.

    With a regular install this is True, so ``sparse=None`` resolves to the
    sparse route; pass ``sparse=False`` for the dense projector.
    """
    try:
        return importlib.util.find_spec("scipy.sparse.linalg") is not None
    except ModuleNotFoundError:
        return False


def residual_matrix(residuals: Sequence[pd.Series]) -> np.ndarray:
    """Align per-node residuals by observation index.

    Returns:
        Array of shape (n_obs, n_nodes); observations missing for a node are NaN
    """
    if not residuals:
        raise ValueError("residuals cannot be empty")
    frame = pd.concat(list(residuals), axis=1, ignore_index=True)
    return frame.to_numpy(dtype=float)


def residual_covariance(res: np.ndarray) -> np.ndarray:
    """Sample covariance ``R'R / n`` over fully observed rows.

    ``n`` counts every observation, including the rows dropped for
    containing a missing value.
    """
    n = res.shape[0]
    complete = ~np.isnan(res).any(axis=1)
    if not complete.all():
        logger.warning(
            "Dropping %d of %d residual rows with missing values",
            int((~complete).sum()),
            n,
        )
    kept = res[complete]
    return kept.T @ kept / n


def cov2cor(m: np.ndarray) -> np.ndarray:
    """Scale a covariance matrix into a correlation matrix."""
    d = np.sqrt(np.diag(m))
    return m / np.outer(d, d)


def shrinkage_weights(res: np.ndarray, covm: np.ndarray) -> np.ndarray:
    """Shrink the sample covariance towards its diagonal.

    Uses the analytic shrinkage intensity of Schafer and Strimmer (2005),
    clamped to [0, 1].
    """
    n = res.shape[0]
    tar = np.diag(np.nansum(res**2, axis=0) / n)
    corm = cov2cor(covm)
    xs = res / np.sqrt(np.diag(covm))
    xs = xs[~np.isnan(xs).any(axis=1)]
    v = (1 / (n * (n - 1))) * ((xs**2).T @ xs**2 - (1 / n) * (xs.T @ xs) ** 2)
    np.fill_diagonal(v, 0)
    corapn = cov2cor(tar)
    d = (corm - corapn) ** 2
    denom = d.sum()
    lam = v.sum() / denom if denom > 0 else 1.0
    lam = max(min(lam, 1.0), 0.0)
    logger.debug("Shrinkage intensity lambda=%.4f", lam)
    return lam * tar + (1 - lam) * covm


def weight_matrix(
    method: str,
    n_nodes: int,
    residuals: np.ndarray | None = None,
    structure: np.ndarray | None = None,
) -> np.ndarray:
    """Reconciliation weight matrix ``W`` for a min_trace method.

    Args:
        method: One of ols, wls_var, wls_struct, mint_cov, mint_shrink
        n_nodes: Number of hierarchy nodes
        residuals: (n_obs, n_nodes) residual matrix, needed by the
            covariance based methods
        structure: Summation matrix, needed by wls_struct

    Returns:
        (n_nodes, n_nodes) weight matrix
    """
    if method == "ols":
        return np.eye(n_nodes)
    if method == "wls_struct":
        if structure is None:
            raise ValueError("wls_struct weights need the summation matrix")
        return np.diag(structure.sum(axis=1))
    if method not in ("wls_var", "mint_cov", "mint_shrink"):
        raise UnknownMethodError(
            f"Unknown reconciliation method '{method}'", context={"method": method}
        )

    if residuals is None:
        raise ValueError(f"{method} weights need in-sample residuals")
    if residuals.shape[1] != n_nodes:
        raise ValueError(
            f"residual matrix has {residuals.shape[1]} columns, expected {n_nodes}"
        )
    covm = residual_covariance(residuals)
    if method == "wls_var":
        return np.diag(np.diag(covm))
    if method == "mint_cov":
        return covm
    return shrinkage_weights(residuals, covm)


def check_positive_definite(w: np.ndarray, tol: float = 1e-8) -> None:
    """Raise IllConditionedWeightError unless every eigenvalue is at least ``tol``."""
    if not np.all(np.isfinite(w)):
        raise IllConditionedWeightError(
            "min_trace needs the weight matrix to be finite",
            context={"non_finite_entries": int((~np.isfinite(w)).sum())},
        )
    eigenvalues = np.linalg.eigvalsh((w + w.T) / 2)
    if np.any(eigenvalues < tol):
        raise IllConditionedWeightError(
            "min_trace needs covariance matrix to be positive definite",
            context={"min_eigenvalue": float(eigenvalues.min()), "tolerance": tol},
        )


def dense_projection(smat: np.ndarray, w: np.ndarray) -> np.ndarray:
    """``(S' W^-1 S)^-1 S' W^-1`` of shape (n_leaves, n_nodes)."""
    r = np.linalg.solve(w, smat).T
    return np.linalg.solve(r @ smat, r)


def sparse_projection(
    smat: np.ndarray,
    w: np.ndarray,
    leaf_rows: Sequence[int],
) -> np.ndarray:
    """Projection via the constraint formulation, using scipy.sparse.

    Args:
        smat: Summation matrix (n_nodes, n_leaves)
        w: Weight matrix (n_nodes, n_nodes)
        leaf_rows: Node position of each leaf column of ``smat``

    Returns:
        Dense projection of shape (n_leaves, n_nodes)
    """
    from scipy import sparse
    from scipy.sparse.linalg import spsolve

    n_nodes, n_leaves = smat.shape
    leaf_rows = np.asarray(leaf_rows, dtype=int)
    agg_rows = np.setdiff1d(np.arange(n_nodes), leaf_rows)

    j = sparse.csr_matrix(
        (np.ones(n_leaves), (np.arange(n_leaves), leaf_rows)),
        shape=(n_leaves, n_nodes),
    )
    if len(agg_rows) == 0:
        return j.toarray()

    u = sparse.hstack(
        [sparse.identity(len(agg_rows), format="csr"), -sparse.csr_matrix(smat[agg_rows])],
        format="csc",
    )
    u = u[:, np.argsort(np.concatenate([agg_rows, leaf_rows]))]

    w_s = sparse.csr_matrix(w)
    uwu = (u @ w_s @ u.T).tocsc()
    x = spsolve(uwu, u.tocsc())
    if not sparse.issparse(x):
        x = sparse.csr_matrix(np.asarray(x).reshape(len(agg_rows), n_nodes))

    logger.debug(
        "Sparse projection: %d aggregate rows, %d bottom rows, nnz(U)=%d",
        len(agg_rows),
        n_leaves,
        u.nnz,
    )
    p = j - j @ w_s @ u.T @ x
    return np.asarray(p.toarray())


def reconciled_mean(smat: np.ndarray, p: np.ndarray, means: np.ndarray) -> np.ndarray:
    """Coherent means of shape (n_nodes, h) from (h, n_nodes) base means."""
    return smat @ p @ means.T


def reconciled_variance(
    smat: np.ndarray,
    p: np.ndarray,
    w: np.ndarray,
    variances: np.ndarray,
) -> np.ndarray:
    """Per-step variance ``diag(S P W_h P' S')`` with ``W_h`` rebuilt from W's correlations.

    Args:
        smat: Summation matrix (n_nodes, n_leaves)
        p: Projection (n_leaves, n_nodes)
        w: Weight matrix used for the projection
        variances: Base forecast variances (h, n_nodes)

    Returns:
        Reconciled variances (n_nodes, h)
    """
    r1 = cov2cor(w)
    sp = smat @ p
    out = np.empty((smat.shape[0], variances.shape[0]))
    for step, var in enumerate(variances):
        sd = np.sqrt(var)
        w_h = r1 * np.outer(sd, sd)
        out[:, step] = np.einsum("ij,jk,ik->i", sp, w_h, sp)
    return np.maximum(out, 0.0)


def bottom_up_variance(smat: np.ndarray, variances: np.ndarray) -> np.ndarray:
    """``diag(S diag(v) S')`` per step for independent leaves; (n_nodes, h)."""
    return (smat**2) @ variances.T


__all__ = [
    "bottom_up_variance",
    "check_positive_definite",
    "cov2cor",
    "dense_projection",
    "reconciled_mean",
    "reconciled_variance",
    "residual_covariance",
    "residual_matrix",
    "shrinkage_weights",
    "sparse_available",
    "sparse_projection",
    "weight_matrix",
]
