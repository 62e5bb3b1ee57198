"""Hierarchical forecast reconciliation.

``min_trace()`` and ``bottom_up()`` tag a model column with a strategy; no
numbers are computed until the column is forecast. ``reconcile_forecasts()``
then forecasts the column, builds the summation matrix from the key data and
replaces every node's distribution with its coherent counterpart. A failure
at any step aborts the whole reconciliation.

Example:
    >>> mbl = reconcile(mbl, ets=lambda m: min_trace(m, method="mint_shrink"))
    >>> reconciled = reconcile_forecasts(mbl["ets"], mbl.key_data, h=12)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from mabletools.contracts.strategy import (
    STRATEGY_KINDS,
    BottomUp,
    MinTrace,
    Unreconciled,
    parse_strategy,
)
from mabletools.core.config import ReconciliationConfig
from mabletools.core.errors import NonNormalForecastError, TemporalHierarchyError
from mabletools.core.types import ForecastDistribution
from mabletools.models import protocol

from . import linalg
from .keys import KeyData, format_node
from .structure import HierarchyForest, build_smat

if TYPE_CHECKING:
    from mabletools.mable.table import ModelColumn, ModelTable

logger = logging.getLogger(__name__)

NodeId = tuple


def min_trace(
    models: ModelColumn,
    method: str = "wls_var",
    sparse: bool | None = None,
) -> ModelColumn:
    """Tag a model column for minimum trace reconciliation.

    The response of the hierarchy must be aggregated using sums.

    Args:
        models: Model column of a mable
        method: One of wls_var, ols, wls_struct, mint_cov, mint_shrink
        sparse: Use sparse matrix algebra; by default decided when the
            column is forecast, depending on whether scipy is installed

    Raises:
        UnknownMethodError: If ``method`` is not recognised

    References:
        Wickramasuriya, S. L., Athanasopoulos, G., & Hyndman, R. J. (2019).
        Optimal forecast reconciliation for hierarchical and grouped time
        series through trace minimization. JASA, 114(526), 804-819.
    """
    return models.with_strategy(MinTrace(method=method, sparse=sparse))


def bottom_up(models: ModelColumn) -> ModelColumn:
    """Tag a model column for bottom-up reconciliation."""
    return models.with_strategy(BottomUp())


def tag_reconciliation(models: ModelColumn, strategy: str, **params: Any) -> ModelColumn:
    """Tag a model column by strategy name.

    Example:
        >>> tag_reconciliation(mbl["ets"], "min_trace", method="ols")
    """
    if strategy not in STRATEGY_KINDS:
        raise ValueError(
            f"Unknown reconciliation strategy '{strategy}'; expected one of {list(STRATEGY_KINDS)}"
        )
    return models.with_strategy(parse_strategy({"kind": strategy, **params}))


def reconcile(
    mable: ModelTable,
    **strategies: ModelColumn | Callable[[ModelColumn], ModelColumn],
) -> ModelTable:
    """Apply reconciliation strategies to model columns of a mable.

    Each keyword names a model column; the value is either an already tagged
    ``ModelColumn`` or a function applied to the current column.
    """
    columns = {}
    for name, strategy in strategies.items():
        if name not in mable.model_columns:
            raise ValueError(f"'{name}' is not a model column of this mable")
        columns[name] = strategy(mable[name]) if callable(strategy) else strategy
    return mable.mutate(**columns)


def reconcile_forecasts(
    models: ModelColumn,
    key_data: KeyData,
    h: int,
) -> dict[NodeId, ForecastDistribution]:
    """Forecast a model column, applying its reconciliation strategy.

    Args:
        models: Model column, one model per node in node order
        key_data: Aggregation key structure of the mable
        h: Forecast horizon

    Returns:
        Mapping from node key to its (reconciled) forecast distribution,
        in node order
    """
    if len(models) != key_data.n_nodes:
        raise ValueError(
            f"Model column has {len(models)} models but key data has {key_data.n_nodes} nodes"
        )
    strategy = models.strategy
    nodes = key_data.node_ids()

    if isinstance(strategy, Unreconciled):
        return {node: protocol.forecast(model, h) for node, model in zip(nodes, models)}
    if isinstance(strategy, BottomUp):
        return _reconcile_bottom_up(models, key_data, nodes, h)
    if isinstance(strategy, MinTrace):
        return _reconcile_min_trace(models, key_data, nodes, h, strategy.config())
    raise TypeError(f"Unsupported reconciliation strategy: {strategy!r}")


def _check_temporal(
    forecasts: Sequence[ForecastDistribution],
    nodes: Sequence[NodeId],
    key_vars: list[str],
) -> None:
    """All nodes must share one interval and horizon."""
    seen: dict[tuple[str | None, int], str] = {}
    for node, fc in zip(nodes, forecasts):
        seen.setdefault((fc.interval, fc.horizon), format_node(key_vars, node))
    if len(seen) > 1:
        raise TemporalHierarchyError(
            "Reconciliation of temporal hierarchies is not supported",
            context={
                "intervals": {
                    f"{interval} x {horizon}": node for (interval, horizon), node in seen.items()
                }
            },
        )


def _reconcile_bottom_up(
    models: ModelColumn,
    key_data: KeyData,
    nodes: list[NodeId],
    h: int,
) -> dict[NodeId, ForecastDistribution]:
    forest = HierarchyForest.from_key_data(key_data)
    smat = forest.smat
    leaves = forest.leaf_rows

    forecasts = [protocol.forecast(models[pos], h) for pos in leaves]
    _check_temporal(forecasts, [nodes[pos] for pos in leaves], key_data.key_vars)
    for pos, fc in zip(leaves, forecasts):
        if not fc.is_normal:
            raise NonNormalForecastError(
                "Reconciliation of non-normal forecasts is not supported",
                context={"node": format_node(key_data.key_vars, nodes[pos]), "family": fc.family},
            )

    means = np.column_stack([fc.mean for fc in forecasts])
    variances = np.column_stack([fc.variance for fc in forecasts])
    rec_mean = smat @ means.T
    rec_var = linalg.bottom_up_variance(smat, variances)

    logger.info("Bottom-up reconciled %d nodes from %d series", len(nodes), len(leaves))
    template = forecasts[0]
    return {
        node: template.with_moments(rec_mean[i], rec_var[i])
        for i, node in enumerate(nodes)
    }


def _reconcile_min_trace(
    models: ModelColumn,
    key_data: KeyData,
    nodes: list[NodeId],
    h: int,
    config: ReconciliationConfig,
) -> dict[NodeId, ForecastDistribution]:
    forecasts = [protocol.forecast(model, h) for model in models]
    _check_temporal(forecasts, nodes, key_data.key_vars)
    for node, fc in zip(nodes, forecasts):
        if fc.variance is None:
            raise NonNormalForecastError(
                "min_trace needs a forecast variance for every node",
                context={"node": format_node(key_data.key_vars, node), "family": fc.family},
            )
    means = np.column_stack([fc.mean for fc in forecasts])
    variances = np.column_stack([fc.variance for fc in forecasts])

    forest = HierarchyForest.from_key_data(key_data)
    smat = forest.smat

    residuals = None
    if config.method in ("wls_var", "mint_cov", "mint_shrink"):
        residuals = linalg.residual_matrix([protocol.residuals(model) for model in models])
    structure = build_smat(key_data) if config.method == "wls_struct" else None
    w = linalg.weight_matrix(config.method, len(models), residuals=residuals, structure=structure)
    linalg.check_positive_definite(w, config.pd_tolerance)

    sparse = config.resolve_sparse()
    logger.debug(
        "min_trace(%s): S %s, sparse=%s", config.method, smat.shape, sparse
    )
    if sparse:
        p = linalg.sparse_projection(smat, w, forest.leaf_rows)
    else:
        p = linalg.dense_projection(smat, w)

    rec_mean = linalg.reconciled_mean(smat, p, means)
    rec_var = linalg.reconciled_variance(smat, p, w, variances)

    logger.info("min_trace(%s) reconciled %d nodes", config.method, len(nodes))
    return {
        node: fc.with_moments(rec_mean[i], rec_var[i])
        for i, (node, fc) in enumerate(zip(nodes, forecasts))
    }


__all__ = [
    "bottom_up",
    "min_trace",
    "reconcile",
    "reconcile_forecasts",
    "tag_reconciliation",
]
