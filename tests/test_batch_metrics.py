"""Tests for batch metrics."""

import pytest

from wallcore.metrics.batch_metrics import BatchMetrics


def test_warnings_are_counted_by_category():
    """Each warning bumps its category counter."""
    metrics = BatchMetrics()
    metrics.add_warning("slow offset", "performance")
    metrics.add_warning("slow union", "performance")
    metrics.add_warning("odd thickness")
    payload = metrics.to_dict()
    assert payload["warnings"]["total"] == 3
    assert payload["warnings"]["byCategory"] == {"performance": 2, "general": 1}


def test_success_rate():
    """Empty batches count as fully successful."""
    assert BatchMetrics().success_rate() == 1.0
    metrics = BatchMetrics(total_walls=4, converted_walls=3, failed_walls=1)
    assert metrics.success_rate() == pytest.approx(0.75)
    metrics.add_error("w4: degenerate")
    payload = metrics.to_dict()
    assert payload["walls"] == {"total": 4, "converted": 3, "failed": 1}
    assert payload["errors"]["list"] == ["w4: degenerate"]
