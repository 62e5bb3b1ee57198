"""Forecast distribution record exchanged with the forecasting collaborator."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np
import pandas as pd


@dataclass(frozen=True, eq=False)
class ForecastDistribution:
    """Forecast of one series over the horizon.

    Attributes:
        mean: Point forecasts, one per horizon step
        variance: Forecast variance per step (None if the model gives none)
        response_name: Name of the forecast response variable
        family: Distribution family; reconciliation assumes "normal"
        interval: Temporal granularity of the forecast (e.g. "1M")
    """

    mean: np.ndarray
    variance: np.ndarray | None = None
    response_name: str = "y"
    family: str = "normal"
    interval: str | None = None

    def __post_init__(self) -> None:
        mean = np.atleast_1d(np.asarray(self.mean, dtype=float))
        object.__setattr__(self, "mean", mean)
        if self.variance is not None:
            variance = np.atleast_1d(np.asarray(self.variance, dtype=float))
            if variance.shape != mean.shape:
                raise ValueError(
                    f"variance shape {variance.shape} doesn't match mean shape {mean.shape}"
                )
            if np.any(variance < 0):
                raise ValueError("variance must be non-negative")
            object.__setattr__(self, "variance", variance)

    @property
    def horizon(self) -> int:
        return len(self.mean)

    @property
    def is_normal(self) -> bool:
        return self.family == "normal" and self.variance is not None

    @property
    def std(self) -> np.ndarray:
        if self.variance is None:
            raise ValueError("Distribution has no variance")
        return np.sqrt(self.variance)

    def quantile(self, p: float) -> np.ndarray:
        """Quantile of a normal forecast at probability ``p``."""
        if not self.is_normal:
            raise ValueError(f"Quantiles require a normal distribution, got '{self.family}'")
        if not 0 < p < 1:
            raise ValueError(f"p must be in (0, 1), got {p}")
        from scipy import stats

        return stats.norm.ppf(p, loc=self.mean, scale=self.std)

    def quantiles(self, levels: list[float] | tuple[float, ...] = (0.1, 0.5, 0.9)) -> pd.DataFrame:
        """Quantile table with one ``q{level}`` column per requested level."""
        return pd.DataFrame(
            {f"q{level}": self.quantile(level) for level in levels},
            index=pd.RangeIndex(1, self.horizon + 1, name="h"),
        )

    def with_moments(self, mean: np.ndarray, variance: np.ndarray) -> ForecastDistribution:
        """Return a new normal distribution with the given moments."""
        return replace(self, mean=mean, variance=variance, family="normal")
