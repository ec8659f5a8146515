import logging
from pathlib import Path

import pytest

from geopostal.common.config_loader import RetryConfig, Settings
from geopostal.common.errors import InvalidInputError, SourceNotFoundError
from geopostal.common.models import Record
from geopostal.ingest.pipeline import IngestPipeline
from geopostal.search.query import Searcher
from geopostal.service import PostalCodeService, open_store


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "store_url": f"sqlite:///{tmp_path / 'postal_codes.db'}",
        "batch_size": 1024,
        "max_in_flight": None,
        "encoding": "utf-8",
        "retry": RetryConfig(),
        "log_level": "INFO",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.integration
def test_2500_line_import_is_searchable(tmp_path: Path, postal_file):
    store = open_store(_settings(tmp_path))
    try:
        report = IngestPipeline(store, batch_size=1024).run(postal_file(2500))

        assert [outcome.written for outcome in report.outcomes] == [1024, 1024, 452]
        assert store.count() == 2500

        results = Searcher(store).search_terms({"place": "Place", "number": "1234"})
        assert 0 < len(results) <= 20
        assert results[0].record.postal_code == "1234"
        scores = [result.score for result in results]
        assert scores == sorted(scores, reverse=True)
    finally:
        store.close()


@pytest.mark.integration
@pytest.mark.parametrize("max_in_flight", [None, 2])
def test_import_with_bounded_and_unbounded_writes(tmp_path: Path, postal_file, max_in_flight):
    store = open_store(_settings(tmp_path))
    try:
        report = IngestPipeline(store, batch_size=7, max_in_flight=max_in_flight).run(postal_file(100))
        assert report.ok is True
        assert report.batches_dispatched == 15
        assert store.count() == 100
    finally:
        store.close()


@pytest.mark.integration
def test_service_imports_inserts_and_searches(tmp_path: Path, postal_file):
    settings = _settings(tmp_path, batch_size=10)
    with PostalCodeService(settings, data_dir=tmp_path / "data") as service:
        report = service.import_file(postal_file(25, country="NZ"))
        assert report.records_written == 25

        assert service.insert(Record("NZ", "6011", "Wellington", "Wellington", "")).ok is True
        assert service.insert([Record("NZ", "1010", "Auckland", "Auckland", "")], many=True).ok is True

        results = service.search({"city": "Wellington"})
        assert [result.record.postal_code for result in results] == ["6011"]

        with pytest.raises(InvalidInputError):
            service.search({})
        with pytest.raises(SourceNotFoundError):
            service.import_file(tmp_path / "missing.txt")

    assert list((tmp_path / "data" / "run_meta").glob("*.log.jsonl"))


@pytest.mark.integration
def test_service_leaves_caller_store_open(tmp_path: Path, make_store):
    store = make_store()
    closed = []
    store.close = lambda: closed.append(True)

    with PostalCodeService(_settings(tmp_path), store=store):
        pass

    assert closed == []


def _open_file_handlers() -> list[logging.FileHandler]:
    handlers = []
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("geopostal") and isinstance(logger, logging.Logger):
            handlers.extend(h for h in logger.handlers if isinstance(h, logging.FileHandler))
    return handlers


@pytest.mark.integration
def test_repeated_imports_leave_no_log_files_open(tmp_path: Path, postal_file):
    before = set(logging.Logger.manager.loggerDict)
    service = PostalCodeService(_settings(tmp_path, batch_size=10), data_dir=tmp_path / "data")

    for attempt in range(5):
        assert service.import_file(postal_file(12, name=f"part_{attempt}.txt")).ok is True
    run_loggers = {name for name in logging.Logger.manager.loggerDict if name.startswith("geopostal.ingest-")}
    assert run_loggers - before == set()

    service.close()

    assert _open_file_handlers() == []
    assert len(list((tmp_path / "data" / "run_meta").glob("ingest-*.log.jsonl"))) == 5
