"""Model table (mable).

A mable holds one row per series, identified by its key variables, and one or
more model columns whose cells are fitted-model handles. Every model in the
table shares a single response variable. Each model column carries a
reconciliation strategy tag; forecasting the table dispatches on that tag.

Example:
    >>> mbl = build_mable(frame, key=["state"], model=["ets"])
    >>> mbl = reconcile(mbl, ets=lambda m: min_trace(m, method="mint_shrink"))
    >>> fc = mbl.forecast(h=12)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, overload

import numpy as np
import pandas as pd

from mabletools.contracts.strategy import ReconciliationStrategy, Unreconciled
from mabletools.core.errors import EmptyModelTableError, InvalidResponseError, NonUniqueKeyError
from mabletools.hierarchy.keys import KeyData, format_node
from mabletools.models.protocol import ModelHandle, is_model_handle


class ModelColumn(Sequence):
    """Immutable column of fitted models plus its reconciliation strategy."""

    def __init__(
        self,
        models: Iterable[ModelHandle],
        strategy: ReconciliationStrategy | None = None,
    ) -> None:
        models = tuple(models)
        for i, model in enumerate(models):
            if not is_model_handle(model):
                raise TypeError(
                    f"Element {i} of a model column is a {type(model).__name__}, "
                    "not a fitted model (needs response, forecast() and residuals())"
                )
        self._models = models
        self.strategy = strategy if strategy is not None else Unreconciled()

    @overload
    def __getitem__(self, index: int) -> ModelHandle: ...

    @overload
    def __getitem__(self, index: slice) -> ModelColumn: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return ModelColumn(self._models[index], self.strategy)
        return self._models[index]

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[ModelHandle]:
        return iter(self._models)

    def __repr__(self) -> str:
        return f"ModelColumn(n={len(self)}, strategy={self.strategy.kind})"

    @property
    def responses(self) -> set[str]:
        return {m.response for m in self._models}

    def take(self, positions: Sequence[int]) -> ModelColumn:
        return ModelColumn([self._models[i] for i in positions], self.strategy)

    def with_strategy(self, strategy: ReconciliationStrategy) -> ModelColumn:
        """Same models tagged with ``strategy`` (replaces any previous tag)."""
        return ModelColumn(self._models, strategy)


def _model_cells(values: Iterable[Any]) -> bool:
    values = list(values)
    return bool(values) and all(is_model_handle(v) for v in values)


def _object_column(models: Sequence[ModelHandle]) -> np.ndarray:
    out = np.empty(len(models), dtype=object)
    for i, model in enumerate(models):
        out[i] = model
    return out


class ModelTable:
    """Keyed table of fitted models.

    Use :func:`build_mable` to construct one; every verb returns a new,
    re-validated table.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        key_data: KeyData,
        model: list[str],
        strategies: dict[str, ReconciliationStrategy],
    ) -> None:
        self._data = data
        self._key_data = key_data
        self._model = list(model)
        self._strategies = dict(strategies)

    # ---------------------------
    # Metadata
    # ---------------------------

    @property
    def key_vars(self) -> list[str]:
        return self._key_data.key_vars

    @property
    def key_data(self) -> KeyData:
        return self._key_data

    @property
    def model_columns(self) -> list[str]:
        return list(self._model)

    @property
    def strategies(self) -> dict[str, ReconciliationStrategy]:
        return dict(self._strategies)

    @property
    def columns(self) -> list[str]:
        return list(self._data.columns)

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"<ModelTable: {len(self)} x {self._data.shape[1]}, "
            f"key={self.key_vars}, models={self._model}>"
        )

    def __getitem__(self, name: str) -> ModelColumn | pd.Series:
        if name in self._model:
            return ModelColumn(self._data[name].tolist(), self._strategies[name])
        return self._data[name].copy()

    def __setitem__(self, name: str, value: Any) -> None:
        updated = self.mutate(**{name: value})
        self.__dict__.update(updated.__dict__)

    def as_frame(self) -> pd.DataFrame:
        """Plain DataFrame copy without key or model metadata."""
        return self._data.copy()

    def summary(self) -> dict[str, Any]:
        """Shape, key and model column overview."""
        return {
            "shape": self.shape,
            "key": self.key_vars,
            "n_keys": self._key_data.n_nodes,
            "models": {name: self._strategies[name].kind for name in self._model},
        }

    # ---------------------------
    # Tidy verbs
    # ---------------------------

    def _rebuild(
        self,
        data: pd.DataFrame,
        key: list[str],
        strategies: Mapping[str, ReconciliationStrategy],
        degrade: bool,
        key_data: KeyData | None = None,
    ) -> ModelTable | pd.DataFrame:
        model = [c for c in data.columns if _model_cells(data[c])]
        if len(data) == 0:
            model = [c for c in data.columns if c in strategies]
        if not model:
            if degrade:
                return data.reset_index(drop=True)
            raise EmptyModelTableError(
                "A mable must contain at least one model",
                context={"columns": list(data.columns)},
            )
        return build_mable(
            data,
            key=None if key_data is not None else key,
            key_data=key_data,
            model=model,
            strategies={c: s for c, s in strategies.items() if c in model},
        )

    def select(self, *columns: str, degrade: bool = False) -> ModelTable | pd.DataFrame:
        """Keep the given columns.

        Key variables that are not selected are dropped from the key, so the
        remaining key must still identify every row.
        """
        missing = [c for c in columns if c not in self._data.columns]
        if missing:
            raise ValueError(f"Columns not found: {missing}")
        data = self._data[list(columns)]
        key = [k for k in self.key_vars if k in columns]
        key_data = self._key_data if key == self.key_vars else None
        return self._rebuild(data, key, self._strategies, degrade, key_data=key_data)

    def drop(self, *columns: str, degrade: bool = False) -> ModelTable | pd.DataFrame:
        """Remove the given columns."""
        keep = [c for c in self._data.columns if c not in columns]
        return self.select(*keep, degrade=degrade)

    def filter(
        self,
        predicate: pd.Series | np.ndarray | Sequence[bool] | Callable[[pd.DataFrame], Any],
    ) -> ModelTable:
        """Keep rows where ``predicate`` holds.

        ``predicate`` is a boolean mask or a callable receiving the
        underlying DataFrame and returning one.
        """
        mask = predicate(self._data) if callable(predicate) else predicate
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (len(self._data),):
            raise ValueError(f"filter mask has shape {mask.shape}, expected ({len(self._data)},)")
        data = self._data[mask].reset_index(drop=True)
        return build_mable(data, key=self.key_vars, model=self._model, strategies=self._strategies)

    def mutate(self, *, degrade: bool = False, **columns: Any) -> ModelTable | pd.DataFrame:
        """Add, replace or (with ``None``) remove columns.

        Values may be a ``ModelColumn`` (keeps its strategy), a callable
        receiving this table, or anything pandas can assign as a column.
        """
        data = self._data.copy()
        strategies = dict(self._strategies)
        for name, value in columns.items():
            if callable(value) and not isinstance(value, ModelColumn):
                value = value(self)
            if value is None:
                data = data.drop(columns=name)
                strategies.pop(name, None)
            elif isinstance(value, ModelColumn):
                if len(value) != len(data):
                    raise ValueError(
                        f"Model column '{name}' has {len(value)} models, expected {len(data)}"
                    )
                data[name] = _object_column(list(value))
                strategies[name] = value.strategy
            else:
                data[name] = value
                strategies.pop(name, None)
        for name in data.columns:
            if name not in strategies and _model_cells(data[name]):
                strategies[name] = Unreconciled()
        key = [k for k in self.key_vars if k in data.columns]
        return self._rebuild(data, key, strategies, degrade)

    def rename(self, mapping: Mapping[str, str] | None = None, **kwargs: str) -> ModelTable:
        """Rename columns, ``old -> new``; key and model metadata follow."""
        mapping = {**(mapping or {}), **kwargs}
        missing = [c for c in mapping if c not in self._data.columns]
        if missing:
            raise ValueError(f"Columns not found: {missing}")
        renamed = [mapping.get(c, c) for c in self._data.columns]
        clashes = sorted({c for c in renamed if renamed.count(c) > 1})
        if clashes:
            raise ValueError(f"Renaming would duplicate columns: {clashes}")
        data = self._data.rename(columns=mapping)
        strategies = {mapping.get(c, c): s for c, s in self._strategies.items()}
        key_data = self._key_data.rename(mapping)
        return build_mable(
            data,
            key_data=key_data,
            model=[mapping.get(c, c) for c in self._model],
            strategies=strategies,
        )

    def gather(
        self,
        key: str = "key",
        value: str = "value",
        columns: Sequence[str] | None = None,
    ) -> ModelTable:
        """Stack model columns into one, adding ``key`` to the key variables.

        The stacked column keeps a strategy only if all gathered columns
        share it.
        """
        columns = list(columns) if columns is not None else list(self._model)
        missing = [c for c in columns if c not in self._data.columns]
        if missing:
            raise ValueError(f"Columns not found: {missing}")
        id_vars = [c for c in self._data.columns if c not in columns]
        long = self._data.melt(id_vars=id_vars, value_vars=columns, var_name=key, value_name=value)

        kinds = {self._strategies.get(c, Unreconciled()) for c in columns}
        strategies = {c: s for c, s in self._strategies.items() if c not in columns}
        strategies[value] = kinds.pop() if len(kinds) == 1 else Unreconciled()

        model = [c for c in self._model if c not in columns] + [value]
        return build_mable(
            long,
            key=self.key_vars + [key],
            model=model,
            strategies=strategies,
        )

    # ---------------------------
    # Models
    # ---------------------------

    def forecast(self, h: int) -> pd.DataFrame:
        """Forecast every model column, reconciling tagged columns.

        Returns:
            Long DataFrame with the key variables, ``.model``, ``h``, the
            response mean, ``variance`` and ``family``
        """
        from mabletools.hierarchy.reconciliation import reconcile_forecasts

        records: list[dict[str, Any]] = []
        for name in self._model:
            forecasts = reconcile_forecasts(self[name], self._key_data, h)
            for node, dist in forecasts.items():
                base = dict(zip(self.key_vars, node))
                variance = dist.variance
                if variance is None:
                    variance = np.full(dist.horizon, np.nan)
                for step in range(dist.horizon):
                    records.append({
                        **base,
                        ".model": name,
                        "h": step + 1,
                        dist.response_name: dist.mean[step],
                        "variance": variance[step],
                        "family": dist.family,
                    })
        return pd.DataFrame.from_records(records)

    def equation(self) -> Any:
        """Equation of the single model held by a one-row, one-model table."""
        if len(self) > 1 or len(self._model) > 1:
            raise ValueError(
                "Model equations are only supported for individual models. "
                "Use select() and filter() to identify a single model."
            )
        handle = self._data[self._model[0]].iloc[0]
        if not hasattr(handle, "equation"):
            raise ValueError(f"{type(handle).__name__} does not provide an equation")
        return handle.equation()


def build_mable(
    data: pd.DataFrame,
    key: Sequence[str] | str | None = None,
    key_data: KeyData | None = None,
    model: Sequence[str] | str | None = None,
    strategies: Mapping[str, ReconciliationStrategy] | None = None,
) -> ModelTable:
    """Validate ``data`` and wrap it as a mable.

    Args:
        data: DataFrame whose model columns hold fitted-model handles
        key: Key variables identifying each row
        key_data: Pre-computed key structure (takes precedence over ``key``)
        model: Model columns; detected from cell types when omitted
        strategies: Reconciliation tag per model column

    Raises:
        EmptyModelTableError: If there is no model column
        InvalidResponseError: If models have different response variables
        NonUniqueKeyError: If the key does not identify each row
    """
    data = data.reset_index(drop=True)
    if isinstance(model, str):
        model = [model]
    if isinstance(key, str):
        key = [key]

    if model is None:
        model = [c for c in data.columns if _model_cells(data[c])]
    model = list(model)
    missing = [c for c in model if c not in data.columns]
    if missing:
        raise ValueError(f"Model columns not found in data: {missing}")
    if not model:
        raise EmptyModelTableError(
            "A mable must contain at least one model",
            context={"columns": list(data.columns)},
        )
    for name in model:
        ModelColumn(data[name].tolist())

    responses = {name: sorted({m.response for m in data[name]}) for name in model}
    if len({r for rs in responses.values() for r in rs}) > 1:
        raise InvalidResponseError(
            "A mable can only contain models with the same response variable",
            context={"responses": responses},
        )

    if key_data is None:
        key_data = KeyData.from_frame(data, list(key or []))
    duplicated = key_data.duplicated()
    if duplicated:
        raise NonUniqueKeyError(
            "The key variables must uniquely identify each row",
            context={
                "key": key_data.key_vars,
                "duplicated": [format_node(key_data.key_vars, k) for k in duplicated[:5]],
            },
        )

    strategies = dict(strategies or {})
    return ModelTable(
        data=data,
        key_data=key_data,
        model=model,
        strategies={name: strategies.get(name, Unreconciled()) for name in model},
    )


build_model_table = build_mable


def as_mable(
    data: pd.DataFrame,
    key: Sequence[str] | str | None = None,
    model: Sequence[str] | str | None = None,
) -> ModelTable:
    """Coerce a DataFrame holding model columns to a mable."""
    return build_mable(data, key=key, model=model)


def is_mable(x: object) -> bool:
    return isinstance(x, ModelTable)


def coerce_to_plain(table: ModelTable) -> pd.DataFrame:
    return table.as_frame()


def key_variables(table: ModelTable) -> list[str]:
    return table.key_vars


def key_data(table: ModelTable) -> KeyData:
    return table.key_data


__all__ = [
    "ModelColumn",
    "ModelTable",
    "as_mable",
    "build_mable",
    "build_model_table",
    "coerce_to_plain",
    "is_mable",
    "key_data",
    "key_variables",
]
