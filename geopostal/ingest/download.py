"""GeoNames postal code dump download and extraction."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from urllib.parse import urlparse

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from geopostal.common.config_loader import RetryConfig
from geopostal.common.constants import USER_AGENT
from geopostal.common.errors import DownloadError
from geopostal.common.fs import ensure_dir
from geopostal.common.logging import default_logger, log_event

GEONAMES_POSTAL_CODES_URL = "https://download.geonames.org/export/zip/{country}.zip"
README_MEMBER = "readme.txt"


def _download_filename(download_url: str) -> str:
    basename = Path(urlparse(download_url).path).name
    return basename or "postal_codes.zip"


def _stream_to_file(download_url: str, target_path: Path) -> None:
    ensure_dir(target_path.parent)
    response = requests.get(
        download_url,
        headers={"User-Agent": USER_AGENT, "Accept": "*/*"},
        timeout=(20, 120),
        stream=True,
    )
    response.raise_for_status()
    with target_path.open("wb") as f:
        for chunk in response.iter_content(chunk_size=1024 * 128):
            if chunk:
                f.write(chunk)


def _extract_data_member(archive_path: Path, target_dir: Path) -> Path:
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = [
                name
                for name in archive.namelist()
                if name.lower().endswith(".txt") and Path(name).name.lower() != README_MEMBER
            ]
            if not members:
                raise DownloadError(f"No postal code data file in {archive_path.name}")
            member = members[0]
            archive.extract(member, target_dir)
    except zipfile.BadZipFile as exc:
        raise DownloadError(f"Downloaded file is not a zip archive: {archive_path.name}") from exc
    return target_dir / member


def geonames_url(country_code: str) -> str:
    return GEONAMES_POSTAL_CODES_URL.format(country=country_code.strip().upper())


def download_dump(
    download_url: str,
    target_dir: Path,
    *,
    retry_config: RetryConfig | None = None,
    logger: logging.Logger | None = None,
) -> Path:
    """Fetch a postal code dump and return the path of the extracted data file.

    Plain ``.txt`` downloads are returned as-is; ``.zip`` archives are unpacked
    next to the download. Connection errors and timeouts are retried.
    """
    retry_config = retry_config or RetryConfig()
    logger = logger or default_logger()
    target_path = target_dir / _download_filename(download_url)

    @retry(
        stop=stop_after_attempt(retry_config.max_attempts),
        wait=wait_exponential_jitter(initial=retry_config.multiplier, max=retry_config.max_wait, jitter=1.0),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _fetch() -> None:
        _stream_to_file(download_url, target_path)

    try:
        _fetch()
    except requests.RequestException as exc:
        log_event(
            logger,
            f"download failed: {download_url}",
            level=logging.ERROR,
            stage="download",
            event="DOWNLOAD",
            status="error",
            error_code=DownloadError.error_code,
        )
        raise DownloadError(f"Unable to download {download_url}") from exc

    data_path = target_path
    if target_path.suffix.lower() == ".zip":
        data_path = _extract_data_member(target_path, target_dir)

    log_event(logger, f"downloaded {download_url} to {data_path}", stage="download", event="DOWNLOAD", status="ok")
    return data_path
