"""Tab-delimited line parsing and lazy line source."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from geopostal.common.constants import DEFAULT_ENCODING, RECORD_COLUMNS
from geopostal.common.models import Record


def parse_line(line: str) -> Record:
    """Map one GeoNames postal code line onto a ``Record``.

    Short lines are accepted: absent columns become empty strings. Column 4
    (admin code1) is split off but never stored.
    """
    columns = line.rstrip("\r\n").split("\t")
    fields = {}
    for index, name in RECORD_COLUMNS.items():
        fields[name] = columns[index] if index < len(columns) else ""
    return Record(**fields)


def iter_lines(path: Path, encoding: str = DEFAULT_ENCODING) -> Iterator[str]:
    # Undecodable bytes are read as U+FFFD.
    with path.open("r", encoding=encoding, errors="replace", newline="") as f:
        for line in f:
            yield line.rstrip("\r\n")
