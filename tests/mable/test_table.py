"""Tests for the model table (mable)."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from mabletools import (
    AGGREGATED,
    BottomUp,
    MinTrace,
    ModelColumn,
    ModelTable,
    Unreconciled,
    as_mable,
    bottom_up,
    build_mable,
    build_model_table,
    coerce_to_plain,
    is_mable,
    key_data,
    key_variables,
    min_trace,
)
from mabletools.core.errors import EmptyModelTableError, InvalidResponseError, NonUniqueKeyError


@pytest.fixture
def two_model_mable(state_frame, fake_model):
    frame = state_frame.copy()
    frame["naive"] = [fake_model(mean=[m, m], variance=[3.0, 3.0]) for m in (14.0, 9.0, 5.0)]
    return build_mable(frame, key="state", model=["ets", "naive"])


class TestBuildMable:
    """Test construction and validation."""

    def test_basic(self, state_mable):
        assert is_mable(state_mable)
        assert state_mable.key_vars == ["state"]
        assert state_mable.model_columns == ["ets"]
        assert len(state_mable) == 3
        assert state_mable.key_data.n_nodes == 3
        assert state_mable.strategies == {"ets": Unreconciled()}

    def test_detects_model_columns(self, state_frame):
        frame = state_frame.assign(weight=[1.0, 2.0, 3.0])
        mbl = as_mable(frame, key="state")
        assert mbl.model_columns == ["ets"]

    def test_missing_model_column(self, state_frame):
        with pytest.raises(ValueError, match="not found"):
            build_mable(state_frame, key="state", model="arima")

    def test_missing_key(self, state_frame):
        with pytest.raises(ValueError, match="not found"):
            build_mable(state_frame, key="region", model="ets")

    def test_no_models(self):
        with pytest.raises(EmptyModelTableError):
            build_mable(pd.DataFrame({"state": ["A", "B"]}), key="state")

    def test_non_model_cells(self, state_frame):
        frame = state_frame.assign(ets=[1, 2, 3])
        with pytest.raises(TypeError, match="not a fitted model"):
            build_mable(frame, key="state", model="ets")

    def test_mixed_responses(self, state_frame, fake_model):
        frame = state_frame.copy()
        frame.loc[2, "ets"] = fake_model(mean=[1.0, 1.0], response="z")
        with pytest.raises(InvalidResponseError) as exc_info:
            build_mable(frame, key="state", model="ets")
        assert exc_info.value.context["responses"] == {"ets": ["y", "z"]}

    def test_duplicate_key(self, state_frame):
        frame = state_frame.assign(state=[AGGREGATED, "A", "A"])
        with pytest.raises(NonUniqueKeyError) as exc_info:
            build_mable(frame, key="state", model="ets")
        assert exc_info.value.context["duplicated"] == ["state=A"]

    def test_missing_key_values_duplicate(self, state_frame):
        frame = state_frame.assign(state=[np.nan, "A", np.nan])
        with pytest.raises(NonUniqueKeyError):
            build_mable(frame, key="state", model="ets")

    def test_accessors(self, state_mable):
        assert key_variables(state_mable) == ["state"]
        assert key_data(state_mable) is state_mable.key_data
        plain = coerce_to_plain(state_mable)
        assert isinstance(plain, pd.DataFrame)
        assert not is_mable(plain)
        assert list(plain.columns) == ["state", "ets"]

    def test_summary(self, state_mable):
        summary = bottom_up_table(state_mable).summary()
        assert summary == {
            "shape": (3, 2),
            "key": ["state"],
            "n_keys": 3,
            "models": {"ets": "bottom_up"},
        }

    def test_build_model_table(self, state_frame):
        mbl = build_model_table(state_frame, key=["state"], model=["ets"])
        assert mbl.model_columns == ["ets"]

    def test_repr(self, state_mable):
        assert "key=['state']" in repr(state_mable)


def bottom_up_table(mbl: ModelTable) -> ModelTable:
    return mbl.mutate(ets=bottom_up(mbl["ets"]))


class TestModelColumn:
    """Test the model column container."""

    def test_getitem(self, state_mable):
        column = state_mable["ets"]
        assert isinstance(column, ModelColumn)
        assert len(column) == 3
        assert column[1].mean == [10.0, 12.0]
        assert column.responses == {"y"}

    def test_slice_keeps_strategy(self, state_mable):
        column = bottom_up(state_mable["ets"])
        assert column[1:].strategy == BottomUp()
        assert len(column[1:]) == 2
        assert column.take([2, 0])[0] is column[2]

    def test_plain_column(self, state_mable):
        assert isinstance(state_mable["state"], pd.Series)

    def test_rejects_non_models(self):
        with pytest.raises(TypeError):
            ModelColumn([object()])


class TestVerbs:
    """Test the tidy verbs."""

    def test_select(self, state_mable):
        mbl = state_mable.select("state", "ets")
        assert mbl.model_columns == ["ets"]
        assert mbl.key_vars == ["state"]

    def test_select_without_models(self, state_mable):
        with pytest.raises(EmptyModelTableError):
            state_mable.select("state")

    def test_select_degrade(self, state_mable):
        out = state_mable.select("state", degrade=True)
        assert isinstance(out, pd.DataFrame)
        assert list(out.columns) == ["state"]

    def test_select_dropping_key(self, state_mable):
        with pytest.raises(NonUniqueKeyError):
            state_mable.select("ets")

    def test_drop(self, two_model_mable):
        mbl = two_model_mable.drop("naive")
        assert mbl.model_columns == ["ets"]
        with pytest.raises(EmptyModelTableError):
            mbl.drop("ets")

    def test_filter_keeps_strategy(self, state_mable):
        mbl = bottom_up_table(state_mable).filter(lambda d: d["state"] != "B")
        assert len(mbl) == 2
        assert mbl.strategies["ets"] == BottomUp()

    def test_filter_mask(self, state_mable):
        assert len(state_mable.filter([True, False, True])) == 2
        with pytest.raises(ValueError, match="shape"):
            state_mable.filter([True])

    def test_mutate_model_column(self, state_mable):
        mbl = state_mable.mutate(tuned=min_trace(state_mable["ets"], method="ols"))
        assert mbl.model_columns == ["ets", "tuned"]
        assert mbl.strategies["tuned"] == MinTrace(method="ols")
        assert mbl.strategies["ets"] == Unreconciled()

    def test_mutate_callable(self, state_mable):
        mbl = state_mable.mutate(copy=lambda m: m["ets"])
        assert mbl.model_columns == ["ets", "copy"]

    def test_mutate_plain_column(self, state_mable):
        mbl = bottom_up_table(state_mable).mutate(weight=[1.0, 2.0, 3.0])
        assert mbl.model_columns == ["ets"]
        assert mbl["weight"].tolist() == [1.0, 2.0, 3.0]
        assert mbl.strategies["ets"] == BottomUp()

    def test_mutate_remove(self, two_model_mable):
        mbl = two_model_mable.mutate(naive=None)
        assert mbl.model_columns == ["ets"]
        with pytest.raises(EmptyModelTableError):
            mbl.mutate(ets=None)
        assert isinstance(mbl.mutate(ets=None, degrade=True), pd.DataFrame)

    def test_mutate_other_response(self, state_mable, fake_model):
        column = ModelColumn([fake_model(mean=[1.0], response="z") for _ in range(3)])
        with pytest.raises(InvalidResponseError):
            state_mable.mutate(other=column)

    def test_mutate_length_mismatch(self, state_mable):
        with pytest.raises(ValueError, match="expected 3"):
            state_mable.mutate(short=state_mable["ets"][:2])

    def test_setitem(self, state_mable):
        state_mable["bu"] = bottom_up(state_mable["ets"])
        assert state_mable.model_columns == ["ets", "bu"]
        assert state_mable.strategies["bu"] == BottomUp()

    def test_rename(self, state_mable):
        mbl = bottom_up_table(state_mable).rename(ets="model", state="region")
        assert mbl.model_columns == ["model"]
        assert mbl.key_vars == ["region"]
        assert mbl.strategies == {"model": BottomUp()}

    def test_rename_onto_existing_column(self, state_mable):
        with pytest.raises(ValueError, match="duplicate columns"):
            state_mable.rename(ets="state")

    def test_rename_swap(self, two_model_mable):
        mbl = two_model_mable.rename(ets="naive", naive="ets")
        assert mbl.model_columns == ["naive", "ets"]

    def test_rename_missing(self, state_mable):
        with pytest.raises(ValueError, match="not found"):
            state_mable.rename(arima="model")

    def test_gather(self, two_model_mable):
        long = two_model_mable.gather("model", "fit")
        assert len(long) == 6
        assert long.key_vars == ["state", "model"]
        assert long.model_columns == ["fit"]
        assert long["model"].tolist() == ["ets"] * 3 + ["naive"] * 3

    def test_gather_shared_strategy(self, two_model_mable):
        tagged = two_model_mable.mutate(
            ets=bottom_up(two_model_mable["ets"]),
            naive=bottom_up(two_model_mable["naive"]),
        )
        assert tagged.gather().strategies == {"value": BottomUp()}
        mixed = tagged.mutate(naive=min_trace(tagged["naive"]))
        assert mixed.gather().strategies == {"value": Unreconciled()}


class TestEquation:
    """Test model equations."""

    def test_single_model(self, state_mable):
        assert state_mable.filter([False, True, False]).equation() == "y_t = 10.0"

    def test_multiple_rows(self, state_mable):
        with pytest.raises(ValueError, match="individual models"):
            state_mable.equation()

    def test_multiple_models(self, two_model_mable):
        with pytest.raises(ValueError, match="individual models"):
            two_model_mable.filter([True, False, False]).equation()
