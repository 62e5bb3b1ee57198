"""Tests for coherence checking."""

from __future__ import annotations

import pytest

from mabletools import AGGREGATED, bottom_up, reconcile_forecasts
from mabletools.hierarchy import CoherenceReport, check_coherence


class TestCheckCoherence:
    """Test the coherence report."""

    def test_base_forecasts_incoherent(self, state_mable):
        fc = reconcile_forecasts(state_mable["ets"], state_mable.key_data, h=2)
        report = check_coherence(fc, state_mable.key_data)

        assert not report.is_coherent
        assert report.total_checks == 2
        assert len(report.violations) == 2
        assert report.violation_rate == 1.0
        assert report.max_difference == pytest.approx(1.0)

        first = report.violations[0]
        assert first.parent_node == "state=<aggregated>"
        assert first.child_nodes == ["state=A", "state=B"]
        assert first.expected_value == pytest.approx(15.0)
        assert first.actual_value == pytest.approx(16.0)
        assert first.difference == pytest.approx(1.0)
        assert first.step == 1

    def test_reconciled_coherent(self, state_mable):
        fc = reconcile_forecasts(bottom_up(state_mable["ets"]), state_mable.key_data, h=2)
        report = check_coherence(fc, state_mable.key_data)
        assert report.is_coherent
        assert report.violation_rate == 0.0

    def test_tolerance(self, state_mable):
        fc = reconcile_forecasts(state_mable["ets"], state_mable.key_data, h=2)
        assert check_coherence(fc, state_mable.key_data, tolerance=1.5).is_coherent

    def test_missing_node(self, state_mable):
        fc = reconcile_forecasts(state_mable["ets"], state_mable.key_data, h=2)
        del fc[(AGGREGATED,)]
        with pytest.raises(ValueError, match="Missing forecasts"):
            check_coherence(fc, state_mable.key_data)

    def test_to_dict(self, state_mable):
        fc = reconcile_forecasts(state_mable["ets"], state_mable.key_data, h=2)
        payload = check_coherence(fc, state_mable.key_data).to_dict()
        assert payload["is_coherent"] is False
        assert payload["violations"][1]["step"] == 2
        assert payload["violations"][1]["expected_value"] == pytest.approx(18.0)


class TestCoherenceReport:
    """Test report defaults."""

    def test_empty_report(self):
        report = CoherenceReport()
        assert report.is_coherent
        assert report.violation_rate == 0.0
        assert report.to_dict()["violations"] == []
