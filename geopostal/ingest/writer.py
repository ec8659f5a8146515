"""Bulk writes to the store with per-batch failure isolation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Sequence

from geopostal.common.errors import InvalidInputError, PipelineError
from geopostal.common.logging import default_logger, log_event
from geopostal.common.models import Batch, Record
from geopostal.common.time_utils import elapsed_ms
from geopostal.store.base import Store


@dataclass(frozen=True)
class WriteOutcome:
    batch_index: int | None
    ok: bool
    written: int
    failed: int = 0
    error_code: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "batch_index": self.batch_index,
            "ok": self.ok,
            "written": self.written,
            "failed": self.failed,
            "error_code": self.error_code,
            "error": self.error,
        }


def _error_code(exc: Exception) -> str:
    if isinstance(exc, PipelineError):
        return exc.error_code
    return "UNEXPECTED_ERROR"


class BulkWriter:
    """Hands batches to ``Store.insert_many``.

    A failed batch is logged and reported in its ``WriteOutcome``; it is never
    raised, so an import keeps going with the next batch. The records of that
    batch are lost for this run.
    """

    def __init__(self, store: Store, logger: logging.Logger | None = None, *, run_id: str | None = None) -> None:
        self.store = store
        self.logger = logger or default_logger()
        self.run_id = run_id

    def write(self, batch: Batch | None) -> WriteOutcome:
        if batch is None or not batch.records:
            raise InvalidInputError("write() needs a non-empty batch")

        started_at = time.monotonic()
        try:
            written = self.store.insert_many(batch.records)
        except Exception as exc:
            code = _error_code(exc)
            log_event(
                self.logger,
                f"unable to insert batch {batch.index}",
                level=logging.ERROR,
                run_id=self.run_id,
                stage="write",
                event="BATCH_FAIL",
                status="error",
                batch=batch.index,
                rows_in=len(batch),
                rows_out=0,
                duration_ms=elapsed_ms(started_at),
                error_code=code,
            )
            return WriteOutcome(
                batch_index=batch.index,
                ok=False,
                written=0,
                failed=len(batch),
                error_code=code,
                error=str(exc),
            )

        log_event(
            self.logger,
            f"inserted batch {batch.index}",
            run_id=self.run_id,
            stage="write",
            event="BATCH_WRITE",
            status="ok",
            batch=batch.index,
            rows_in=len(batch),
            rows_out=written,
            duration_ms=elapsed_ms(started_at),
        )
        return WriteOutcome(batch_index=batch.index, ok=True, written=written)

    def write_one(self, record: Record | None) -> WriteOutcome:
        if record is None:
            raise InvalidInputError("write_one() needs a record")

        try:
            self.store.insert_one(record)
        except Exception as exc:
            code = _error_code(exc)
            log_event(
                self.logger,
                "unable to insert postal code",
                level=logging.ERROR,
                run_id=self.run_id,
                stage="write",
                event="RECORD_FAIL",
                status="error",
                rows_in=1,
                rows_out=0,
                error_code=code,
            )
            return WriteOutcome(batch_index=None, ok=False, written=0, failed=1, error_code=code, error=str(exc))

        log_event(
            self.logger,
            "inserted postal code",
            level=logging.DEBUG,
            run_id=self.run_id,
            stage="write",
            event="RECORD_WRITE",
            status="ok",
            rows_in=1,
            rows_out=1,
        )
        return WriteOutcome(batch_index=None, ok=True, written=1)

    def insert(self, entry: Record | Sequence[Record] | None, many: bool = False) -> WriteOutcome:
        """Insert one record, or a sequence of records as a single batch when ``many``."""
        if entry is None:
            raise InvalidInputError("insert() needs a record or records")
        if many:
            if isinstance(entry, Record):
                raise InvalidInputError("insert(many=True) needs a sequence of records")
            return self.write(Batch(index=0, records=tuple(entry)))
        if not isinstance(entry, Record):
            raise InvalidInputError("insert() needs a Record unless many=True")
        return self.write_one(entry)
