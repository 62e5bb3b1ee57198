"""Tests for ReconciliationConfig and the strategy tags.

Tests configuration validation, presets, sparse resolution, and the
serialisable pydantic tags carried by model columns.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mabletools import BottomUp, MinTrace, ReconciliationConfig, Unreconciled
from mabletools.contracts import parse_strategy
from mabletools.core.errors import UnknownMethodError


class TestReconciliationConfigValidation:
    """Test config validation."""

    def test_defaults(self):
        """Default method is wls_var with sparse probed lazily."""
        config = ReconciliationConfig()
        assert config.method == "wls_var"
        assert config.sparse is None
        assert config.pd_tolerance == 1e-8

    def test_unknown_method(self):
        """Unknown methods are rejected at construction."""
        with pytest.raises(UnknownMethodError) as exc_info:
            ReconciliationConfig(method="mint_magic")
        assert exc_info.value.context["method"] == "mint_magic"
        assert "mint_shrink" in exc_info.value.context["available"]

    def test_negative_tolerance(self):
        """pd_tolerance cannot be negative."""
        with pytest.raises(ValueError, match="pd_tolerance must be non-negative"):
            ReconciliationConfig(pd_tolerance=-1.0)

    def test_frozen(self):
        """Config is immutable."""
        config = ReconciliationConfig()
        with pytest.raises(AttributeError):
            config.method = "ols"


class TestReconciliationConfigPresets:
    """Test preset constructors."""

    def test_ols(self):
        assert ReconciliationConfig.ols().method == "ols"

    def test_structural(self):
        config = ReconciliationConfig.structural(sparse=False)
        assert config.method == "wls_struct"
        assert config.sparse is False

    def test_shrink(self):
        assert ReconciliationConfig.shrink().method == "mint_shrink"


class TestResolveSparse:
    """Test sparse flag resolution."""

    def test_explicit_flag_wins(self):
        assert ReconciliationConfig(sparse=False).resolve_sparse() is False
        assert ReconciliationConfig(sparse=True).resolve_sparse() is True

    def test_probe_when_unset(self, monkeypatch):
        """An unset flag follows scipy availability at resolution time."""
        monkeypatch.setattr("mabletools.hierarchy.linalg.sparse_available", lambda: False)
        assert ReconciliationConfig().resolve_sparse() is False
        monkeypatch.setattr("mabletools.hierarchy.linalg.sparse_available", lambda: True)
        assert ReconciliationConfig().resolve_sparse() is True


class TestStrategyTags:
    """Test the pydantic strategy tags."""

    def test_kinds(self):
        assert Unreconciled().kind == "unreconciled"
        assert BottomUp().kind == "bottom_up"
        assert MinTrace().kind == "min_trace"

    def test_min_trace_defaults(self):
        tag = MinTrace()
        assert tag.method == "wls_var"
        assert tag.sparse is None

    def test_min_trace_unknown_method(self):
        with pytest.raises(UnknownMethodError):
            MinTrace(method="median")

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            BottomUp(method="ols")

    def test_frozen(self):
        tag = MinTrace(method="ols")
        with pytest.raises(ValidationError):
            tag.method = "mint_cov"

    def test_equality(self):
        """Tags compare by value."""
        assert MinTrace(method="ols") == MinTrace(method="ols")
        assert MinTrace(method="ols") != MinTrace(method="mint_cov")

    def test_config(self):
        config = MinTrace(method="mint_shrink", sparse=False).config()
        assert config == ReconciliationConfig(method="mint_shrink", sparse=False)

    @pytest.mark.parametrize(
        "tag",
        [Unreconciled(), BottomUp(), MinTrace(method="mint_cov", sparse=True)],
    )
    def test_parse_dumped_tag(self, tag):
        """A dumped tag is rebuilt as the same tag."""
        assert parse_strategy(tag.model_dump()) == tag

    def test_parse_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_strategy({"kind": "top_down"})
