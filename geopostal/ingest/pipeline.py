"""Streaming file import: parse, batch and bulk write."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from geopostal.common.constants import DEFAULT_BATCH_SIZE, DEFAULT_ENCODING, DEFAULT_WRITE_WORKERS
from geopostal.common.errors import InvalidInputError, SourceNotFoundError
from geopostal.common.fs import write_json
from geopostal.common.ids import generate_run_id
from geopostal.common.logging import default_logger, log_event
from geopostal.common.models import Batch
from geopostal.common.schema import validate_batch_size, validate_max_in_flight
from geopostal.common.time_utils import elapsed_ms
from geopostal.ingest.batcher import Batcher
from geopostal.ingest.parser import iter_lines, parse_line
from geopostal.ingest.writer import BulkWriter, WriteOutcome
from geopostal.store.base import Store


class PipelineState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


@dataclass
class IngestReport:
    run_id: str
    source: str
    batch_size: int
    lines_read: int = 0
    records_read: int = 0
    outcomes: list[WriteOutcome] = field(default_factory=list)
    duration_ms: int | None = None
    error_code: str | None = None
    error: str | None = None

    @property
    def batches_dispatched(self) -> int:
        return len(self.outcomes)

    @property
    def batches_failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    @property
    def records_written(self) -> int:
        return sum(outcome.written for outcome in self.outcomes)

    @property
    def records_failed(self) -> int:
        return sum(outcome.failed for outcome in self.outcomes)

    @property
    def ok(self) -> bool:
        return self.batches_failed == 0 and self.error_code is None

    @property
    def status(self) -> str:
        return "success" if self.ok else "partial"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "source": self.source,
            "batch_size": self.batch_size,
            "status": self.status,
            "lines_read": self.lines_read,
            "records_read": self.records_read,
            "batches_dispatched": self.batches_dispatched,
            "batches_failed": self.batches_failed,
            "records_written": self.records_written,
            "records_failed": self.records_failed,
            "duration_ms": self.duration_ms,
            "error_code": self.error_code,
            "error": self.error,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class IngestPipeline:
    """Imports one tab-delimited file into a store.

    States run ``IDLE -> STREAMING -> DRAINING -> DONE``. A missing source file
    moves ``IDLE -> FAILED`` before any line is read. A read error after that
    still ends in ``DONE`` with a ``partial`` report. Sealed batches are handed
    to writer threads without waiting for earlier writes to finish, so batches
    are dispatched in order but may complete in any order. ``max_in_flight``
    caps how many dispatched batches may be outstanding; ``None`` means no cap.
    """

    def __init__(
        self,
        store: Store,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_in_flight: int | None = None,
        encoding: str = DEFAULT_ENCODING,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        self.batch_size = validate_batch_size(batch_size)
        self.max_in_flight = validate_max_in_flight(max_in_flight)
        self.encoding = encoding
        self.run_id = run_id or generate_run_id()
        self.logger = logger or default_logger()
        self.writer = BulkWriter(store, self.logger, run_id=self.run_id)
        self.state = PipelineState.IDLE
        self.dispatched: list[int] = []

    def _dispatch(
        self,
        executor: ThreadPoolExecutor,
        batch: Batch,
        in_flight: threading.BoundedSemaphore | None,
    ) -> Future:
        if in_flight is not None:
            in_flight.acquire()
        self.dispatched.append(batch.index)
        future = executor.submit(self.writer.write, batch)
        if in_flight is not None:
            future.add_done_callback(lambda _future: in_flight.release())
        return future

    def run(self, path: Path | str, *, report_path: Path | None = None) -> IngestReport:
        if self.state is not PipelineState.IDLE:
            raise InvalidInputError(f"Pipeline {self.run_id} has already run")

        source = Path(path)
        if not source.is_file():
            self.state = PipelineState.FAILED
            log_event(
                self.logger,
                f"source file does not exist: {source}",
                level=logging.ERROR,
                run_id=self.run_id,
                stage="preflight",
                event="SOURCE_MISSING",
                status="error",
                error_code=SourceNotFoundError.error_code,
            )
            raise SourceNotFoundError(f"Source file does not exist: {source}")

        started_at = time.monotonic()
        report = IngestReport(run_id=self.run_id, source=str(source), batch_size=self.batch_size)
        batcher = Batcher(self.batch_size)
        in_flight = threading.BoundedSemaphore(self.max_in_flight) if self.max_in_flight else None
        workers = self.max_in_flight or DEFAULT_WRITE_WORKERS
        futures: list[Future] = []

        log_event(
            self.logger,
            f"importing {source}",
            run_id=self.run_id,
            stage="ingest",
            event="INGEST_START",
            status="ok",
        )

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geopostal-write") as executor:
            try:
                self.state = PipelineState.STREAMING
                for line in iter_lines(source, self.encoding):
                    report.lines_read += 1
                    report.records_read += 1
                    batch = batcher.offer(parse_line(line))
                    if batch is not None:
                        futures.append(self._dispatch(executor, batch, in_flight))

                self.state = PipelineState.DRAINING
                batch = batcher.flush()
                if batch is not None:
                    futures.append(self._dispatch(executor, batch, in_flight))
            except Exception as exc:
                # Records still in the open batch are not written.
                report.error_code = getattr(exc, "error_code", "UNEXPECTED_ERROR")
                report.error = str(exc)
                log_event(
                    self.logger,
                    f"reading {source} stopped after {report.lines_read} lines",
                    level=logging.ERROR,
                    run_id=self.run_id,
                    stage=self.state.value,
                    event="INGEST_ABORT",
                    status="error",
                    rows_in=report.records_read,
                    error_code=report.error_code,
                )

            report.outcomes = [future.result() for future in futures]

        report.duration_ms = elapsed_ms(started_at)
        self.state = PipelineState.DONE

        log_event(
            self.logger,
            f"import of {source} finished with {report.batches_failed} failed batches",
            level=logging.INFO if report.ok else logging.WARNING,
            run_id=self.run_id,
            stage="ingest",
            event="INGEST_END",
            status="ok" if report.ok else "partial",
            rows_in=report.records_read,
            rows_out=report.records_written,
            duration_ms=report.duration_ms,
        )

        if report_path is not None:
            write_json(report_path, report.to_dict())
        return report
