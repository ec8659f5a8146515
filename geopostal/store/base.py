"""Store capability consumed by the writer, pipeline and searcher."""

from __future__ import annotations

from typing import Protocol, Sequence

from geopostal.common.models import Record, ScoredRecord


class Store(Protocol):
    """Persistent postal code storage.

    Implementations raise ``StoreWriteError`` from the insert operations and
    ``StoreQueryError`` from ``search``. ``insert_many`` accepts a batch of any
    size; splitting input into batches is the pipeline's job.
    """

    def insert_many(self, records: Sequence[Record]) -> int:
        ...

    def insert_one(self, record: Record) -> None:
        ...

    def search(self, query: str, limit: int) -> list[ScoredRecord]:
        """Return matches ordered by descending relevance score, at most ``limit``."""
        ...

    def close(self) -> None:
        ...
