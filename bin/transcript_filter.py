"""
Keep/drop decision for a single Xenium transcript.

A transcript is kept when it lies inside the x/y window (bounds inclusive),
meets the Q-Score threshold and is not a negative-control probe.
"""

CONTROL_PROBE_PREFIXES = (
    "NegControlProbe_",
    "antisense_",
    "NegControlCodeword_",
    "BLANK_",
)

DROP_REASONS = ("x_location", "y_location", "qv", "control_probe")


def is_control_probe(feature_name, extra_prefixes=()):
    """True if feature_name starts with a control-probe prefix (case-sensitive)."""
    return feature_name.startswith(CONTROL_PROBE_PREFIXES + tuple(extra_prefixes))


def drop_reason(record, min_x, max_x, min_y, max_y, min_qv, extra_prefixes=()):
    """
    Find the first filter rule a transcript fails.

    Comparisons are written so that NaN fails every bound: a transcript with a
    NaN coordinate or Q-Score is dropped.

    Args:
        record: Mapping with x_location, y_location, qv and feature_name
        min_x, max_x, min_y, max_y: Inclusive coordinate window
        min_qv: Inclusive Q-Score lower bound
        extra_prefixes: Control-probe prefixes on top of CONTROL_PROBE_PREFIXES

    Returns:
        str or None: One of DROP_REASONS, or None if the transcript is kept
    """
    x = record["x_location"]
    y = record["y_location"]
    if not (min_x <= x <= max_x):
        return "x_location"
    if not (min_y <= y <= max_y):
        return "y_location"
    if not (record["qv"] >= min_qv):
        return "qv"
    if is_control_probe(record["feature_name"], extra_prefixes):
        return "control_probe"
    return None


def should_keep(record, min_x, max_x, min_y, max_y, min_qv, extra_prefixes=()):
    return drop_reason(record, min_x, max_x, min_y, max_y, min_qv, extra_prefixes) is None
