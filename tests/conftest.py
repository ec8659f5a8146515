"""Store doubles and source file fixtures shared by the test suites."""

from __future__ import annotations

import threading
import time

import pytest

from geopostal.common.errors import StoreQueryError, StoreWriteError
from geopostal.common.models import ScoredRecord


class RecordingStore:
    """Keeps inserted records in memory and fails on request."""

    def __init__(self, fail_batches: set[int] | None = None, batch_size: int = 1, delay: float = 0.0):
        self.fail_batches = fail_batches or set()
        self.batch_size = batch_size
        self.delay = delay
        self.lock = threading.Lock()
        self.batches: list[tuple] = []
        self.calls: list[int] = []
        self.singles: list = []
        self.in_flight = 0
        self.max_in_flight = 0

    def batch_index(self, records) -> int:
        return int(records[0].postal_code) // self.batch_size

    def insert_many(self, records) -> int:
        index = self.batch_index(records)
        with self.lock:
            self.calls.append(index)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if index in self.fail_batches:
                raise StoreWriteError(f"batch {index} rejected")
            with self.lock:
                self.batches.append(tuple(records))
            return len(records)
        finally:
            with self.lock:
                self.in_flight -= 1

    def insert_one(self, record) -> None:
        if record.postal_code == "fail":
            raise StoreWriteError("record rejected")
        self.singles.append(record)

    def search(self, query: str, limit: int) -> list[ScoredRecord]:
        if query == "boom":
            raise StoreQueryError("index unavailable")
        return []

    def close(self) -> None:
        pass

    @property
    def written(self) -> list:
        return [record for batch in self.batches for record in batch]


def write_postal_file(path, count: int, country: str = "FR") -> None:
    """One well-formed line per record; postal_code is the line number."""
    lines = [f"{country}\t{i}\tPlace {i}\tRegion {i % 3}\t{i % 3}\tDistrict {i % 5}\n" for i in range(count)]
    path.write_text("".join(lines), encoding="utf-8")


@pytest.fixture
def make_store():
    return RecordingStore


@pytest.fixture
def postal_file(tmp_path):
    def _make(count: int, name: str = "postal_codes.txt", country: str = "FR"):
        path = tmp_path / name
        write_postal_file(path, count, country=country)
        return path

    return _make
