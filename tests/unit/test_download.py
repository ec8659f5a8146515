import io
import zipfile
from pathlib import Path

import pytest
import requests

from geopostal.common.config_loader import RetryConfig
from geopostal.common.errors import DownloadError
from geopostal.ingest import download

NO_WAIT = RetryConfig(max_attempts=2, multiplier=0.01, max_wait=0.01)


class FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP status: {self.status_code}")

    def iter_content(self, chunk_size: int):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]


def _zip_bytes(members: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in members.items():
            archive.writestr(name, text)
    return buffer.getvalue()


def test_geonames_url_uses_upper_case_country():
    assert download.geonames_url(" fr ") == "https://download.geonames.org/export/zip/FR.zip"


def test_download_dump_extracts_data_member(monkeypatch, tmp_path: Path):
    payload = _zip_bytes({"readme.txt": "about", "FR.txt": "FR\t75001\tParis\n"})
    monkeypatch.setattr(download.requests, "get", lambda *_args, **_kwargs: FakeResponse(payload))

    data_path = download.download_dump("https://example.test/zip/FR.zip", tmp_path, retry_config=NO_WAIT)

    assert data_path == tmp_path / "FR.txt"
    assert data_path.read_text(encoding="utf-8").startswith("FR\t75001")


def test_download_dump_returns_plain_text_as_is(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(download.requests, "get", lambda *_args, **_kwargs: FakeResponse(b"DE\t10115\n"))

    data_path = download.download_dump("https://example.test/DE.txt", tmp_path, retry_config=NO_WAIT)

    assert data_path == tmp_path / "DE.txt"


def test_download_dump_retries_connection_errors(monkeypatch, tmp_path: Path):
    calls = []

    def flaky_get(*_args, **_kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise requests.ConnectionError("reset")
        return FakeResponse(b"NL\t1011\n")

    monkeypatch.setattr(download.requests, "get", flaky_get)

    download.download_dump("https://example.test/NL.txt", tmp_path, retry_config=NO_WAIT)

    assert len(calls) == 2


def test_download_dump_wraps_http_errors(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(download.requests, "get", lambda *_args, **_kwargs: FakeResponse(b"", status_code=404))

    with pytest.raises(DownloadError):
        download.download_dump("https://example.test/XX.zip", tmp_path, retry_config=NO_WAIT)


def test_download_dump_rejects_archive_without_data(monkeypatch, tmp_path: Path):
    payload = _zip_bytes({"readme.txt": "about"})
    monkeypatch.setattr(download.requests, "get", lambda *_args, **_kwargs: FakeResponse(payload))

    with pytest.raises(DownloadError):
        download.download_dump("https://example.test/FR.zip", tmp_path, retry_config=NO_WAIT)
