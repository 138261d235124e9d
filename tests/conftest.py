"""Shared test fixtures for the transcript filter."""

import pandas as pd
import pytest


def make_transcript(*, cell_id, overlaps_nucleus, feature_name, x_location, y_location, qv,
                    transcript_id="281474976710657", z_location="12.5", fov_name="A1",
                    nucleus_distance="0.0", **extra):
    """
    Build a transcript row.

    Every field the filter or the cell-id rewrite reads must be given; only the
    pass-through columns have defaults.
    """
    return {
        "transcript_id": transcript_id,
        "cell_id": cell_id,
        "overlaps_nucleus": overlaps_nucleus,
        "feature_name": feature_name,
        "x_location": x_location,
        "y_location": y_location,
        "z_location": z_location,
        "qv": qv,
        "fov_name": fov_name,
        "nucleus_distance": nucleus_distance,
        **extra,
    }


@pytest.fixture
def transcripts_csv(tmp_path):
    """Write transcript rows to a CSV file and return its path."""

    def _write(rows, name="transcripts.csv", columns=None):
        path = tmp_path / name
        pd.DataFrame(rows, columns=columns).to_csv(path, index=False)
        return path

    return _write
