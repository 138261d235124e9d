"""Tests for transcript_filter."""

import math

import pytest

from tests.conftest import make_transcript
from transcript_filter import (
    CONTROL_PROBE_PREFIXES,
    drop_reason,
    is_control_probe,
    should_keep,
)

EPS = 1e-3
BOUNDS = dict(min_x=0.0, max_x=24000.0, min_y=0.0, max_y=24000.0, min_qv=20.0)


def keep(record, **bounds):
    return should_keep(record, **{**BOUNDS, **bounds})


def gene(x, y, qv, feature_name="gene"):
    """Assigned-cell transcript with the given position, Q-Score and feature."""
    return make_transcript(cell_id="ffkpbaba-1", overlaps_nucleus=1, feature_name=feature_name,
                           x_location=x, y_location=y, qv=qv)


class TestCoordinateBounds:
    def test_inside_window(self):
        assert keep(gene(x=100.0, y=100.0, qv=25.0))

    def test_min_x(self):
        t = gene(x=100.0, y=100.0, qv=25.0)
        assert keep(t, min_x=5.0)
        assert not keep(t, min_x=500.0)

    def test_max_x(self):
        t = gene(x=100.0, y=100.0, qv=25.0)
        assert keep(t, max_x=500.0)
        assert not keep(t, max_x=5.0)

    def test_min_y(self):
        t = gene(x=100.0, y=100.0, qv=25.0)
        assert keep(t, min_y=5.0)
        assert not keep(t, min_y=500.0)

    def test_max_y(self):
        t = gene(x=100.0, y=100.0, qv=25.0)
        assert keep(t, max_y=500.0)
        assert not keep(t, max_y=5.0)

    def test_x_bounds_are_inclusive(self):
        bounds = dict(min_x=10.0, max_x=20.0)
        assert keep(gene(x=10.0, y=5.0, qv=25.0), **bounds)
        assert keep(gene(x=20.0, y=5.0, qv=25.0), **bounds)
        assert not keep(gene(x=10.0 - EPS, y=5.0, qv=25.0), **bounds)
        assert not keep(gene(x=20.0 + EPS, y=5.0, qv=25.0), **bounds)

    def test_y_bounds_are_inclusive(self):
        bounds = dict(min_y=10.0, max_y=20.0)
        assert keep(gene(x=5.0, y=10.0, qv=25.0), **bounds)
        assert keep(gene(x=5.0, y=20.0, qv=25.0), **bounds)
        assert not keep(gene(x=5.0, y=10.0 - EPS, qv=25.0), **bounds)
        assert not keep(gene(x=5.0, y=20.0 + EPS, qv=25.0), **bounds)

    def test_nan_coordinate_is_dropped(self):
        assert not keep(gene(x=math.nan, y=5.0, qv=25.0))
        assert not keep(gene(x=5.0, y=math.nan, qv=25.0))

    def test_infinite_coordinate_outside_window(self):
        assert not keep(gene(x=math.inf, y=5.0, qv=25.0))
        assert keep(gene(x=math.inf, y=5.0, qv=25.0), max_x=math.inf)


class TestQualityThreshold:
    def test_equal_to_threshold_is_kept(self):
        assert keep(gene(x=5.0, y=5.0, qv=20.0), min_qv=20.0)

    def test_below_threshold_is_dropped(self):
        assert not keep(gene(x=5.0, y=5.0, qv=20.0 - EPS), min_qv=20.0)
        assert not keep(gene(x=5.0, y=5.0, qv=25.0), min_qv=30.0)

    def test_no_upper_bound(self):
        assert keep(gene(x=5.0, y=5.0, qv=1e12))
        assert keep(gene(x=5.0, y=5.0, qv=math.inf))

    def test_nan_qv_is_dropped(self):
        assert not keep(gene(x=5.0, y=5.0, qv=math.nan))


class TestControlProbes:
    @pytest.mark.parametrize("name", [
        "BLANK_x",
        "NegControlProbe_x",
        "NegControlCodeword_x",
        "antisense_x",
        "BLANK_0006",
    ])
    def test_control_probes_are_excluded(self, name):
        assert is_control_probe(name)
        assert not keep(gene(x=5.0, y=5.0, qv=25.0, feature_name=name))

    @pytest.mark.parametrize("name", [
        "1_NegControlProbe_test",
        "gene",
        "blank_x",
        "BLANK",
        "ACTB",
    ])
    def test_other_names_are_kept(self, name):
        assert not is_control_probe(name)
        assert keep(gene(x=5.0, y=5.0, qv=25.0, feature_name=name))

    def test_extra_prefixes(self):
        name = "UnassignedCodeword_0001"
        assert not is_control_probe(name)
        assert is_control_probe(name, extra_prefixes=["UnassignedCodeword_"])
        assert not should_keep(gene(x=5.0, y=5.0, qv=25.0, feature_name=name), **BOUNDS,
                               extra_prefixes=("UnassignedCodeword_",))

    def test_extra_prefixes_do_not_replace_builtin(self):
        assert is_control_probe("BLANK_1", extra_prefixes=["DeprecatedCodeword_"])

    def test_builtin_prefixes(self):
        assert set(CONTROL_PROBE_PREFIXES) == {
            "NegControlProbe_", "antisense_", "NegControlCodeword_", "BLANK_",
        }


class TestDropReason:
    def test_kept(self):
        assert drop_reason(gene(x=5.0, y=5.0, qv=25.0), **BOUNDS) is None

    def test_reasons(self):
        assert drop_reason(gene(x=-1.0, y=5.0, qv=25.0), **BOUNDS) == "x_location"
        assert drop_reason(gene(x=5.0, y=-1.0, qv=25.0), **BOUNDS) == "y_location"
        assert drop_reason(gene(x=5.0, y=5.0, qv=1.0), **BOUNDS) == "qv"
        assert drop_reason(gene(x=5.0, y=5.0, qv=25.0, feature_name="BLANK_1"), **BOUNDS) == "control_probe"

    def test_first_failing_rule_wins(self):
        t = gene(x=-1.0, y=-1.0, qv=1.0, feature_name="BLANK_1")
        assert drop_reason(t, **BOUNDS) == "x_location"

    def test_does_not_mutate_record(self):
        t = gene(x=5.0, y=5.0, qv=1.0, feature_name="BLANK_1")
        before = dict(t)
        drop_reason(t, **BOUNDS)
        should_keep(t, **BOUNDS)
        assert t == before
