"""Wiring from settings to store, writer, searcher and import pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Mapping, Sequence

from geopostal.common.config_loader import Settings
from geopostal.common.ids import generate_run_id
from geopostal.common.logging import build_logger, close_logger
from geopostal.common.models import Record, ScoredRecord
from geopostal.ingest.download import download_dump
from geopostal.ingest.pipeline import IngestPipeline, IngestReport
from geopostal.ingest.writer import BulkWriter, WriteOutcome
from geopostal.search.query import Searcher
from geopostal.store.base import Store
from geopostal.store.sql_store import SqlStore


def open_store(settings: Settings) -> SqlStore:
    store = SqlStore(settings.store_url, retry=settings.retry)
    store.create_schema()
    return store


class PostalCodeService:
    """Holds one store handle for the lifetime of the service.

    A store passed in by the caller stays open on ``close``; a store opened
    from ``settings`` is closed with the service.
    """

    def __init__(
        self,
        settings: Settings,
        store: Store | None = None,
        *,
        logger: logging.Logger | None = None,
        data_dir: Path | None = None,
    ) -> None:
        self.settings = settings
        self.data_dir = data_dir
        self.owns_store = store is None
        self.store = store if store is not None else open_store(settings)
        self.owns_logger = logger is None
        self.logger = logger or build_logger("service", data_dir=data_dir, level=settings.log_level)
        self.writer = BulkWriter(self.store, self.logger)
        self.searcher = Searcher(self.store, self.logger)

    def close(self) -> None:
        if self.owns_logger:
            close_logger(self.logger)
        if self.owns_store:
            self.store.close()

    def __enter__(self) -> "PostalCodeService":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def import_file(self, path: Path | str, *, report_path: Path | None = None) -> IngestReport:
        run_id = generate_run_id()
        run_logger = build_logger(run_id, data_dir=self.data_dir, level=self.settings.log_level)
        try:
            pipeline = IngestPipeline(
                self.store,
                batch_size=self.settings.batch_size,
                max_in_flight=self.settings.max_in_flight,
                encoding=self.settings.encoding,
                logger=run_logger,
                run_id=run_id,
            )
            return pipeline.run(path, report_path=report_path)
        finally:
            close_logger(run_logger)

    def import_url(self, download_url: str, target_dir: Path) -> IngestReport:
        data_path = download_dump(download_url, target_dir, retry_config=self.settings.retry, logger=self.logger)
        return self.import_file(data_path)

    def insert(self, entry: Record | Sequence[Record], many: bool = False) -> WriteOutcome:
        return self.writer.insert(entry, many=many)

    def search(self, terms: Mapping[Any, Any]) -> list[ScoredRecord]:
        return self.searcher.search_terms(terms)
