"""Fixed-capacity batching of parsed records."""

from __future__ import annotations

from geopostal.common.constants import DEFAULT_BATCH_SIZE
from geopostal.common.errors import InvalidInputError
from geopostal.common.models import Batch, Record
from geopostal.common.schema import validate_batch_size


class Batcher:
    """Accumulates records and seals a ``Batch`` whenever capacity is reached.

    ``flush`` is called once at end of input and closes the batcher.
    """

    def __init__(self, capacity: int = DEFAULT_BATCH_SIZE) -> None:
        self.capacity = validate_batch_size(capacity, ctx="batch capacity")
        self.batches_sealed = 0
        self.closed = False
        self._open: list[Record] = []

    def _seal(self) -> Batch:
        batch = Batch(index=self.batches_sealed, records=tuple(self._open))
        self.batches_sealed += 1
        self._open = []
        return batch

    def offer(self, record: Record) -> Batch | None:
        if self.closed:
            raise InvalidInputError("Batcher is closed")
        self._open.append(record)
        if len(self._open) >= self.capacity:
            return self._seal()
        return None

    def flush(self) -> Batch | None:
        if self.closed:
            raise InvalidInputError("Batcher is already flushed")
        self.closed = True
        if not self._open:
            return None
        return self._seal()
