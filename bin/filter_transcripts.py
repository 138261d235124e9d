#!/usr/bin/env python3

"""
Filter transcripts from a Xenium transcripts file based on Q-Score threshold
and bounds on x and y coordinates. Remove negative controls and decode
cell IDs to integers.

Reads transcripts.csv, transcripts.csv.gz or transcripts.parquet and writes
  {out_dir}/X{min_x}-{max_x}_Y{min_y}-{max_y}_filtered_transcripts_nucleus_only_{nucleus_only}.csv
"""

import argparse
import os
import sys
from collections import Counter
from dataclasses import dataclass, field

import pandas as pd
import pyarrow as pa
import pyarrow.dataset as ds

from cell_id_codec import MalformedCellId, assign_cell_id
from transcript_filter import DROP_REASONS, drop_reason

__version__ = "0.1.0"

TRANSCRIPT_COLUMNS = [
    "transcript_id",
    "cell_id",
    "overlaps_nucleus",
    "feature_name",
    "x_location",
    "y_location",
    "z_location",
    "qv",
    "fov_name",
    "nucleus_distance",
]

# Columns the filter compares numerically; everything else is passed through as text
NUMERIC_COLUMNS = {"x_location": float, "y_location": float, "qv": float}
CSV_DTYPES = {
    **{c: str for c in TRANSCRIPT_COLUMNS},
    **NUMERIC_COLUMNS,
    "overlaps_nucleus": int,
}
NA_STRINGS = ["", "NA", "NaN", "nan"]

ON_MALFORMED = ("abort", "skip")
DEFAULT_CHUNK_SIZE = 1_000_000


class MissingColumnsError(ValueError):
    """Raised when a transcripts file lacks required columns."""

    def __init__(self, path, missing):
        super().__init__(f"{path} is missing required column(s): {', '.join(missing)}")
        self.path = path
        self.missing = missing


@dataclass(frozen=True)
class FilterOptions:
    min_qv: float = 20.0
    min_x: float = 0.0
    max_x: float = 24000.0
    min_y: float = 0.0
    max_y: float = 24000.0
    nucleus_only: bool = False
    extra_prefixes: tuple = ()


@dataclass
class FilterSummary:
    read: int = 0
    kept: int = 0
    malformed: int = 0
    dropped: Counter = field(default_factory=Counter)


def process_record(record, options, summary=None):
    """
    Filter one transcript and rewrite its cell assignment.

    The input mapping is not modified.

    Returns:
        dict or None: Rewritten copy of the record, or None if it was dropped

    Raises:
        MalformedCellId: If the cell ID of a kept transcript cannot be decoded
    """
    reason = drop_reason(
        record,
        options.min_x,
        options.max_x,
        options.min_y,
        options.max_y,
        options.min_qv,
        options.extra_prefixes,
    )
    if reason is not None:
        if summary is not None:
            summary.dropped[reason] += 1
        return None

    out = dict(record)
    out["cell_id"] = assign_cell_id(record["cell_id"], record["overlaps_nucleus"], options.nucleus_only)
    return out


def filter_records(records, options, on_malformed="abort", summary=None):
    """
    Yield kept, rewritten transcripts in input order.

    Args:
        records: Iterable of transcript mappings
        options: FilterOptions
        on_malformed: "abort" re-raises MalformedCellId, "skip" drops the record
        summary: Optional FilterSummary updated with counts
    """
    if on_malformed not in ON_MALFORMED:
        raise ValueError(f"on_malformed must be one of {ON_MALFORMED}, got {on_malformed!r}")

    for record in records:
        if summary is not None:
            summary.read += 1
        try:
            out = process_record(record, options, summary)
        except MalformedCellId:
            if on_malformed == "abort":
                raise
            if summary is not None:
                summary.malformed += 1
            continue
        if out is None:
            continue
        if summary is not None:
            summary.kept += 1
        yield out


def _check_columns(path, columns):
    missing = [c for c in TRANSCRIPT_COLUMNS if c not in columns]
    if missing:
        raise MissingColumnsError(path, missing)


def _text_schema(schema):
    # feature_name and cell_id are stored as binary in some Xenium parquet versions
    fields = []
    for f in schema:
        if pa.types.is_binary(f.type):
            f = f.with_type(pa.string())
        elif pa.types.is_large_binary(f.type):
            f = f.with_type(pa.large_string())
        fields.append(f)
    return pa.schema(fields)


def is_parquet(path):
    return str(path).endswith(".parquet")


def _parquet_chunks(scanner, schema):
    for batch in scanner.to_batches():
        table = pa.Table.from_batches([batch]).cast(schema)
        yield table.to_pandas()


def _csv_chunks(reader):
    with reader:
        for chunk in reader:
            yield chunk[TRANSCRIPT_COLUMNS]


def read_transcripts(path, chunk_size=DEFAULT_CHUNK_SIZE):
    """
    Open a transcripts file for reading in chunks.

    Required columns are checked before anything is read, so a bad file
    fails here rather than halfway through a run.

    Args:
        path: transcripts.csv, transcripts.csv.gz or transcripts.parquet
        chunk_size: Rows per chunk

    Returns:
        iterator: pd.DataFrame chunks with the TRANSCRIPT_COLUMNS in file order

    Raises:
        MissingColumnsError: If a required column is absent
    """
    if is_parquet(path):
        dataset = ds.dataset(path, format="parquet")
        _check_columns(path, dataset.schema.names)
        scanner = dataset.scanner(columns=TRANSCRIPT_COLUMNS, batch_size=chunk_size)
        schema = pa.schema([dataset.schema.field(c) for c in TRANSCRIPT_COLUMNS])
        return _parquet_chunks(scanner, _text_schema(schema))

    header = pd.read_csv(path, nrows=0).columns
    _check_columns(path, header)
    reader = pd.read_csv(
        path,
        usecols=TRANSCRIPT_COLUMNS,
        dtype=CSV_DTYPES,
        keep_default_na=False,
        na_values={c: NA_STRINGS for c in NUMERIC_COLUMNS},
        chunksize=chunk_size,
    )
    return _csv_chunks(reader)


def _format_bound(value):
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def output_path(out_dir, options):
    """Build the output file name from the filter bounds, e.g. X0-24000_Y0-24000_..._false.csv"""
    name = (
        f"X{_format_bound(options.min_x)}-{_format_bound(options.max_x)}"
        f"_Y{_format_bound(options.min_y)}-{_format_bound(options.max_y)}"
        f"_filtered_transcripts_nucleus_only_{str(options.nucleus_only).lower()}.csv"
    )
    return os.path.join(out_dir, name)


def run(in_file, options, out_dir=".", on_malformed="abort", chunk_size=DEFAULT_CHUNK_SIZE, quiet=False):
    """
    Filter in_file and write the result into out_dir.

    Returns:
        tuple: (output file path, FilterSummary)
    """
    if not os.path.exists(in_file):
        raise FileNotFoundError(f"Input file {in_file} not found")

    if not quiet:
        print(f"Reading {in_file}", file=sys.stderr)
    chunks = read_transcripts(in_file, chunk_size)

    os.makedirs(out_dir, exist_ok=True)
    out_csv = output_path(out_dir, options)
    summary = FilterSummary()

    with open(out_csv, "w", newline="") as f:
        pd.DataFrame(columns=TRANSCRIPT_COLUMNS).to_csv(f, index=False)
        for chunk in chunks:
            kept = list(filter_records(chunk.to_dict("records"), options, on_malformed, summary))
            if kept:
                pd.DataFrame(kept, columns=TRANSCRIPT_COLUMNS).to_csv(f, index=False, header=False)

    if not quiet:
        report(summary, out_csv)
    return out_csv, summary


def report(summary, out_csv):
    print(f"Transcripts read: {summary.read:,}", file=sys.stderr)
    for reason in DROP_REASONS:
        if summary.dropped[reason]:
            print(f"  - Dropped by {reason}: {summary.dropped[reason]:,}", file=sys.stderr)
    if summary.malformed:
        print(f"  - Skipped with malformed cell_id: {summary.malformed:,}", file=sys.stderr)
    print(f"Transcripts kept: {summary.kept:,}", file=sys.stderr)
    print(f"Filtered transcripts written to {out_csv}", file=sys.stderr)


def main(argv=None):
    args = parse_args(argv)
    options = FilterOptions(
        min_qv=args.min_qv,
        min_x=args.min_x,
        max_x=args.max_x,
        min_y=args.min_y,
        max_y=args.max_y,
        nucleus_only=args.nucleus_only,
        extra_prefixes=tuple(args.exclude_prefix),
    )

    try:
        run(
            args.in_file,
            options,
            out_dir=args.out_dir,
            on_malformed=args.on_malformed,
            chunk_size=args.chunk_size,
            quiet=args.quiet,
        )
    except MalformedCellId as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Use --on-malformed skip to drop such transcripts instead.", file=sys.stderr)
        return 1
    except (MissingColumnsError, FileNotFoundError, pa.ArrowInvalid) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (ValueError, pd.errors.ParserError) as e:
        print(f"Error parsing {args.in_file}: {e}", file=sys.stderr)
        return 1
    return 0


def parse_args(argv=None):
    """Parses command-line options for main()."""
    summary = 'Filter transcripts from transcripts.csv based on Q-Score threshold \
               and upper bounds on x and y coordinates. Remove negative controls.'

    parser = argparse.ArgumentParser(description=summary)
    parser.add_argument('in_file',
                        help="The path to the transcripts.csv(.gz) or transcripts.parquet " +
                             "file produced by Xenium.")
    parser.add_argument('--min-qv',
                        default=20.0,
                        type=float,
                        help="The minimum Q-Score to pass filtering. (default: 20.0)")
    parser.add_argument('--min-x',
                        default=0.0,
                        type=float,
                        help="Only keep transcripts whose x-coordinate is greater than specified limit. " +
                             "(default: 0.0)")
    parser.add_argument('--max-x',
                        default=24000.0,
                        type=float,
                        help="Only keep transcripts whose x-coordinate is less than specified limit. " +
                             "Xenium slide is <24000 microns in x and y. (default: 24000.0)")
    parser.add_argument('--min-y',
                        default=0.0,
                        type=float,
                        help="Only keep transcripts whose y-coordinate is greater than specified limit. " +
                             "(default: 0.0)")
    parser.add_argument('--max-y',
                        default=24000.0,
                        type=float,
                        help="Only keep transcripts whose y-coordinate is less than specified limit. " +
                             "Xenium slide is <24000 microns in x and y. (default: 24000.0)")
    parser.add_argument('--nucleus-only',
                        action='store_true',
                        help="Only keep cell assignments of transcripts that are in the nucleus. " +
                             "All other transcripts will not be assigned to a cell.")
    parser.add_argument('--out-dir',
                        default='.',
                        help="Directory for the output file, which is named " +
                             "X{x-min}-{x-max}_Y{y-min}-{y-max}_filtered_transcripts_nucleus_only_{nucleus_only}.csv " +
                             "(default: .)")
    parser.add_argument('--exclude-prefix',
                        action='append',
                        default=[],
                        metavar='PREFIX',
                        help="Additional feature_name prefix to remove, e.g. UnassignedCodeword_. " +
                             "May be given more than once.")
    parser.add_argument('--on-malformed',
                        choices=ON_MALFORMED,
                        default='abort',
                        help="What to do with a transcript whose cell_id cannot be decoded. (default: abort)")
    parser.add_argument('--chunk-size',
                        type=int,
                        default=DEFAULT_CHUNK_SIZE,
                        help=f"Rows read per chunk. (default: {DEFAULT_CHUNK_SIZE})")
    parser.add_argument('--quiet', action='store_true', help='Do not print progress to stderr')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(main())
