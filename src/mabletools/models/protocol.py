"""Protocol for the fitted-model handles stored in a mable.

Fitting models is not part of mabletools. Any object exposing the members of
``ModelHandle`` can live in a model column; the two pure functions below are
the only way the reconciliation code talks to it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
import pandas as pd

from mabletools.core.types import ForecastDistribution


@runtime_checkable
class ModelHandle(Protocol):
    """A fitted model for one series."""

    response: str

    def forecast(self, h: int) -> ForecastDistribution: ...

    def residuals(self) -> pd.Series | np.ndarray: ...


def is_model_handle(value: object) -> bool:
    return isinstance(value, ModelHandle)


def forecast(handle: ModelHandle, h: int) -> ForecastDistribution:
    """Forecast ``h`` steps ahead from a fitted model.

    Args:
        handle: Fitted model
        h: Forecast horizon

    Returns:
        Forecast distribution over the horizon

    Raises:
        ValueError: If h is not positive or the model returns a wrong horizon
        TypeError: If the model does not return a ForecastDistribution
    """
    if h <= 0:
        raise ValueError(f"h must be positive, got {h}")
    result = handle.forecast(h)
    if not isinstance(result, ForecastDistribution):
        raise TypeError(
            f"{type(handle).__name__}.forecast() returned {type(result).__name__}, "
            "expected ForecastDistribution"
        )
    if result.horizon != h:
        raise ValueError(
            f"{type(handle).__name__}.forecast() returned {result.horizon} steps, expected {h}"
        )
    return result


def residuals(handle: ModelHandle) -> pd.Series:
    """In-sample residuals of a fitted model, indexed by observation."""
    res = handle.residuals()
    if isinstance(res, pd.Series):
        return res.astype(float)
    return pd.Series(np.asarray(res, dtype=float))
