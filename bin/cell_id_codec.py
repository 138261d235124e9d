"""
Decode Xenium cell IDs back into integers.

Xenium writes cell IDs as a run of letters plus a dataset suffix, e.g.
"ffkpbaba-1". Each letter 'a'..'p' stands for one hexadecimal digit
(a=0 ... p=15), so the letter run is the cell's integer ID written in
shifted hex.
"""

import re
from dataclasses import dataclass

UNASSIGNED_CELL_IDS = ("UNASSIGNED", "-1")
NO_CELL = "0"

MAX_UINT64 = 2**64 - 1
XENIUM_PREFIX_WIDTH = 8

_SUFFIX_RE = re.compile(r"[0-9]+")


class MalformedCellId(ValueError):
    """Raised when a cell ID is not of the form <letters a-p>-<digits>."""

    def __init__(self, cell_id, reason=None):
        msg = f"Malformed cell ID {cell_id!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.cell_id = cell_id
        self.reason = reason


@dataclass(frozen=True)
class DecodedCellId:
    cell_id_prefix: int
    dataset_suffix: int


def shifted_hex_to_nibbles(letters):
    """
    Map each letter of a shifted-hex run to its nibble value.

    Args:
        letters: Letter run, e.g. "ffkpbaba"

    Returns:
        list: Nibble values in input order, e.g. [5, 5, 10, 15, 1, 0, 1, 0]
    """
    nibbles = []
    for c in letters:
        value = ord(c) - ord("a")
        if not 0 <= value <= 15:
            raise MalformedCellId(letters, f"letter {c!r} is outside 'a'..'p'")
        nibbles.append(value)
    return nibbles


def nibbles_to_int(nibbles):
    """Concatenate nibbles as uppercase hex digits and parse the result."""
    hex_string = "".join(f"{v:X}" for v in nibbles)
    return int(hex_string, 16)


def decode_cell_id(cell_id):
    """
    Decode an encoded Xenium cell ID.

    The split happens at the first '-', so "abc-1-2" has the suffix "1-2"
    and is rejected.

    Args:
        cell_id: Encoded ID, e.g. "ffkpbaba-1"

    Returns:
        DecodedCellId: e.g. DecodedCellId(cell_id_prefix=1437536272, dataset_suffix=1)

    Raises:
        MalformedCellId: If the ID does not have the <letters>-<digits> shape,
            uses letters outside 'a'..'p', or overflows 64 bits.
    """
    if not isinstance(cell_id, str):
        raise MalformedCellId(cell_id, "not a string")

    letters, sep, suffix_str = cell_id.partition("-")
    if not sep:
        raise MalformedCellId(cell_id, "missing '-' separator")
    if not _SUFFIX_RE.fullmatch(suffix_str):
        raise MalformedCellId(cell_id, f"dataset suffix {suffix_str!r} is not a non-negative integer")
    dataset_suffix = int(suffix_str)
    if dataset_suffix > MAX_UINT64:
        raise MalformedCellId(cell_id, "dataset suffix does not fit in 64 bits")

    if not letters:
        raise MalformedCellId(cell_id, "empty letter run")
    try:
        nibbles = shifted_hex_to_nibbles(letters)
    except MalformedCellId as e:
        raise MalformedCellId(cell_id, e.reason) from None

    cell_id_prefix = nibbles_to_int(nibbles)
    if cell_id_prefix > MAX_UINT64:
        raise MalformedCellId(cell_id, "cell ID prefix does not fit in 64 bits")

    return DecodedCellId(cell_id_prefix=cell_id_prefix, dataset_suffix=dataset_suffix)


def encode_cell_id(cell_id_prefix, dataset_suffix=1):
    """
    Encode an integer cell ID the way Xenium writes it.

    The letter run is left-padded with 'a' (zero) to eight letters.
    """
    if not 0 <= cell_id_prefix <= MAX_UINT64:
        raise ValueError(f"cell_id_prefix out of range: {cell_id_prefix}")
    if not 0 <= dataset_suffix <= MAX_UINT64:
        raise ValueError(f"dataset_suffix out of range: {dataset_suffix}")

    hex_string = f"{cell_id_prefix:0{XENIUM_PREFIX_WIDTH}x}"
    letters = "".join(chr(ord("a") + int(d, 16)) for d in hex_string)
    return f"{letters}-{dataset_suffix}"


def assign_cell_id(cell_id, overlaps_nucleus, nucleus_only=False):
    """
    Rewrite a transcript's cell assignment for output.

    Transcripts outside the nucleus lose their cell when nucleus_only is set,
    unassigned markers become "0", and everything else is decoded to the
    integer cell ID. Decoding is skipped for "0".

    Returns:
        str: "0" or the decoded cell ID prefix
    """
    if nucleus_only and not overlaps_nucleus:
        cell_id = NO_CELL

    # parquet exports may hand over the -1 marker as an integer
    cell_id = str(cell_id)
    if cell_id in UNASSIGNED_CELL_IDS:
        cell_id = NO_CELL

    if cell_id == NO_CELL:
        return NO_CELL
    return str(decode_cell_id(cell_id).cell_id_prefix)
