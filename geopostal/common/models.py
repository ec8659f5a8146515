"""Data models used across ingest and search."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Record:
    """One postal code entry. Empty strings are valid field values."""

    country_code: str = ""
    postal_code: str = ""
    place_name: str = ""
    admin_name1: str = ""
    admin_name2: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Batch:
    index: int
    records: tuple[Record, ...]

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class ScoredRecord:
    record: Record
    score: float

    def to_dict(self) -> dict[str, Any]:
        payload = self.record.to_dict()
        payload["score"] = self.score
        return payload
