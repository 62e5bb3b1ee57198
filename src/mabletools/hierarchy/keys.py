"""Aggregation key structure.

A mable's key data lists every distinct key combination together with the
rows it covers. Key values may be the ``AGGREGATED`` marker, meaning the row
is the sum over that variable (for example the national total of a
state-level hierarchy has ``state=AGGREGATED``).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np
import pandas as pd

ROWS_COL = ".rows"


class _Aggregated:
    """Marker for a key variable that has been summed over."""

    _instance: _Aggregated | None = None

    def __new__(cls) -> _Aggregated:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<aggregated>"

    def __reduce__(self) -> str:
        return "AGGREGATED"


AGGREGATED = _Aggregated()


def is_aggregated(values: object) -> np.ndarray | bool:
    """Flag aggregated key values.

    Returns a bool for a scalar and a boolean array for a Series/sequence.
    """
    if isinstance(values, (pd.Series, pd.Index, np.ndarray, list, tuple)):
        return np.fromiter((v is AGGREGATED for v in values), dtype=bool, count=len(values))
    return values is AGGREGATED


class KeyData:
    """Distinct key combinations and the rows each one covers.

    The underlying frame has one column per key variable followed by the
    ``.rows`` column (a list of row positions per combination). Combinations
    are kept in order of first appearance, so for a mable with a unique key
    the node order equals the row order.

    Example:
        >>> frame = pd.DataFrame({"state": [AGGREGATED, "A", "B"]})
        >>> kd = KeyData.from_frame(frame, ["state"])
        >>> kd.node_ids()
        [(<aggregated>,), ('A',), ('B',)]
    """

    def __init__(self, frame: pd.DataFrame) -> None:
        if ROWS_COL not in frame.columns or frame.columns[-1] != ROWS_COL:
            raise ValueError(f"Key data must end with a '{ROWS_COL}' column")
        for rows in frame[ROWS_COL]:
            if isinstance(rows, (str, bytes)) or not isinstance(rows, Iterable):
                raise ValueError(f"'{ROWS_COL}' must hold a sequence of row positions")
        self._frame = frame.reset_index(drop=True)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, key: Sequence[str]) -> KeyData:
        """Group the rows of ``frame`` by the key variables."""
        key = list(key)
        missing = [k for k in key if k not in frame.columns]
        if missing:
            raise ValueError(f"Key variables not found in data: {missing}")

        if not key:
            groups = [list(range(len(frame)))]
            data = pd.DataFrame(index=range(1))
        else:
            # missing key values form one group
            codes = frame.groupby(key, sort=False, dropna=False).ngroup().to_numpy()
            members: dict[int, list[int]] = {}
            for pos, code in enumerate(codes):
                members.setdefault(int(code), []).append(pos)
            groups = list(members.values())
            values = frame[key].to_numpy(dtype=object)
            data = pd.DataFrame([values[g[0]] for g in groups], columns=key, dtype=object)

        rows = np.empty(len(groups), dtype=object)
        for i, group in enumerate(groups):
            rows[i] = group
        data[ROWS_COL] = rows
        return cls(data)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def key_vars(self) -> list[str]:
        return [c for c in self._frame.columns if c != ROWS_COL]

    @property
    def rows(self) -> list[list[int]]:
        return [list(r) for r in self._frame[ROWS_COL]]

    @property
    def n_nodes(self) -> int:
        return len(self._frame)

    def __len__(self) -> int:
        return self.n_nodes

    def __repr__(self) -> str:
        return f"KeyData(key_vars={self.key_vars}, n_nodes={self.n_nodes})"

    def duplicated(self) -> list[tuple]:
        """Key combinations covering more than one row."""
        keys = _key_tuples(self._frame[self.key_vars])
        return [k for k, rows in zip(keys, self._frame[ROWS_COL]) if len(rows) > 1]

    def expanded(self) -> pd.DataFrame:
        """Key values with one line per covered row, indexed by row position."""
        exploded = self._frame.explode(ROWS_COL)
        exploded = exploded[exploded[ROWS_COL].notna()].copy()
        exploded[ROWS_COL] = exploded[ROWS_COL].astype(int)
        return exploded.sort_values(ROWS_COL, kind="stable").set_index(ROWS_COL)[self.key_vars]

    def aggregation_mask(self) -> pd.DataFrame:
        """Boolean frame flagging aggregated key values, in row order."""
        expanded = self.expanded()
        return pd.DataFrame(
            {var: is_aggregated(expanded[var]) for var in self.key_vars},
            index=expanded.index,
        )

    def node_ids(self) -> list[tuple]:
        """Key tuple of every node, in row order."""
        return _key_tuples(self.expanded())

    def leaf_positions(self) -> list[int]:
        """Row positions of nodes carrying no aggregated marker."""
        mask = self.aggregation_mask()
        return [int(pos) for pos in mask.index[~mask.any(axis=1).to_numpy()]]

    def rename(self, mapping: dict[str, str]) -> KeyData:
        return KeyData(self._frame.rename(columns=mapping))


def format_node(key_vars: Sequence[str], node: Sequence[object]) -> str:
    """Readable label for a node, e.g. ``state=A/region=<aggregated>``."""
    if not key_vars:
        return "<all>"
    return "/".join(f"{var}={value}" for var, value in zip(key_vars, node))


def _key_tuples(frame: pd.DataFrame) -> list[tuple]:
    if frame.shape[1] == 0:
        return [()] * len(frame)
    return list(frame.itertuples(index=False, name=None))
