"""Build aggregated key tables from bottom-level data.

``aggregate_key`` adds a row for every aggregate of a nested or grouped
hierarchy, marking the summed-over key variables with ``AGGREGATED``. The
result has the key structure expected by the reconciliation code.
"""

from __future__ import annotations

from collections.abc import Sequence
from itertools import product

import pandas as pd

from .keys import AGGREGATED


def _branches(structure: Sequence[str | Sequence[str]]) -> list[list[str]]:
    """Nested chains of the structure.

    A flat list of names is one chain (top to bottom); a list containing
    lists describes crossed chains.
    """
    if all(isinstance(s, str) for s in structure):
        return [list(structure)]
    return [[s] if isinstance(s, str) else list(s) for s in structure]


def aggregate_key(
    df: pd.DataFrame,
    structure: Sequence[str | Sequence[str]],
    value: str | Sequence[str] = "y",
    index: str | None = "ds",
) -> pd.DataFrame:
    """Append every aggregate of the hierarchy to bottom-level data.

    Args:
        df: Bottom-level data, one row per series and time point
        structure: Hierarchy columns. ``["state", "region"]`` is nested
            (regions within states); ``[["state", "region"], ["purpose"]]``
            crosses that chain with ``purpose``.
        value: Column(s) summed into the aggregates
        index: Time column kept as a grouping variable (None for
            cross-sectional data)

    Returns:
        DataFrame with the key columns, ``index`` and ``value`` columns, most
        aggregated rows first

    Example:
        >>> df = pd.DataFrame({
        ...     "state": ["A", "A", "B"],
        ...     "region": ["r1", "r2", "r3"],
        ...     "y": [1.0, 2.0, 3.0],
        ... })
        >>> aggregate_key(df, ["state", "region"], index=None)["y"].tolist()
        [6.0, 3.0, 3.0, 1.0, 2.0, 3.0]
    """
    branches = _branches(structure)
    key_cols = [c for branch in branches for c in branch]
    values = [value] if isinstance(value, str) else list(value)
    time_cols = [index] if index is not None else []

    missing = [c for c in key_cols + values + time_cols if c not in df.columns]
    if missing:
        raise ValueError(f"Columns not found in data: {missing}")
    if not key_cols:
        raise ValueError("structure cannot be empty")

    frames: list[pd.DataFrame] = []
    for depths in product(*(range(len(branch) + 1) for branch in branches)):
        kept = [c for branch, depth in zip(branches, depths) for c in branch[:depth]]
        by = kept + time_cols
        if by:
            level = df.groupby(by, sort=True, dropna=False)[values].sum().reset_index()
        else:
            level = df[values].sum().to_frame().T.reset_index(drop=True)
        for col in key_cols:
            if col not in kept:
                level[col] = AGGREGATED
        frames.append(level[key_cols + time_cols + values])

    out = pd.concat(frames, ignore_index=True)
    for col in key_cols:
        out[col] = out[col].astype(object)
    return out


__all__ = ["aggregate_key"]
