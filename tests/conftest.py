"""Shared fixtures: fake fitted models and small hierarchies."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import pytest

from mabletools import AGGREGATED, ForecastDistribution, build_mable


@dataclass(eq=False)
class FakeModel:
    """Fitted-model stand-in returning fixed forecasts and residuals."""

    mean: list[float]
    variance: list[float] | None = None
    resid: list[float] = field(default_factory=lambda: [0.5, -0.5, 1.0, -1.0])
    response: str = "y"
    family: str = "normal"
    interval: str | None = "1M"
    calls: int = 0

    def forecast(self, h: int) -> ForecastDistribution:
        self.calls += 1
        variance = None if self.variance is None else self.variance[:h]
        return ForecastDistribution(
            mean=self.mean[:h],
            variance=variance,
            response_name=self.response,
            family=self.family,
            interval=self.interval,
        )

    def residuals(self) -> pd.Series:
        return pd.Series(self.resid, dtype=float)

    def equation(self) -> str:
        return f"{self.response}_t = {self.mean[0]}"


@pytest.fixture
def state_frame() -> pd.DataFrame:
    """Total -> {A, B} with the end-to-end forecasts used across tests."""
    return pd.DataFrame({
        "state": [AGGREGATED, "A", "B"],
        "ets": [
            FakeModel(mean=[16.0, 17.0], variance=[2.0, 2.0], resid=[1.4, -0.9, 2.1, -1.7, 0.3]),
            FakeModel(mean=[10.0, 12.0], variance=[1.0, 1.0], resid=[1.0, -0.5, 1.5, -1.0, 0.2]),
            FakeModel(mean=[5.0, 6.0], variance=[0.5, 0.5], resid=[0.2, -0.6, 0.4, -0.5, 0.3]),
        ],
    })


@pytest.fixture
def state_mable(state_frame):
    return build_mable(state_frame, key="state", model="ets")


@pytest.fixture
def region_frame() -> pd.DataFrame:
    """Total -> states A, B -> regions r1, r2 (A) and r3 (B)."""
    rng = np.random.default_rng(42)
    resid_leaf = rng.normal(size=(30, 3))
    resid_state = np.column_stack([
        resid_leaf[:, 0] + resid_leaf[:, 1], resid_leaf[:, 2]
    ]) + rng.normal(scale=0.3, size=(30, 2))
    resid_total = resid_leaf.sum(axis=1) + rng.normal(scale=0.5, size=30)
    resid = [resid_total, *resid_state.T, *resid_leaf.T]

    keys = [
        (AGGREGATED, AGGREGATED),
        ("A", AGGREGATED),
        ("B", AGGREGATED),
        ("A", "r1"),
        ("A", "r2"),
        ("B", "r3"),
    ]
    means = [[31.0, 33.0], [19.0, 21.0], [10.0, 11.0], [8.0, 9.0], [12.0, 11.0], [9.5, 10.5]]
    variances = [[4.0, 5.0], [2.0, 2.5], [1.0, 1.2], [0.8, 1.0], [1.1, 1.3], [0.9, 1.0]]
    return pd.DataFrame({
        "state": [k[0] for k in keys],
        "region": [k[1] for k in keys],
        "arima": [
            FakeModel(mean=m, variance=v, resid=list(r))
            for m, v, r in zip(means, variances, resid)
        ],
    })


@pytest.fixture
def region_mable(region_frame):
    return build_mable(region_frame, key=["state", "region"], model="arima")


@pytest.fixture
def fake_model():
    """The FakeModel class, for tests building their own mables."""
    return FakeModel
