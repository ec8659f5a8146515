"""Ranked free-text search over stored postal codes."""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from geopostal.common.constants import SEARCH_RESULT_LIMIT
from geopostal.common.errors import InvalidInputError, StoreQueryError
from geopostal.common.logging import default_logger, log_event
from geopostal.common.models import ScoredRecord
from geopostal.common.time_utils import elapsed_ms
from geopostal.store.base import Store


def build_query(terms: Mapping[Any, Any] | None) -> str:
    """Join the values of ``terms`` with single spaces, in iteration order.

    Keys are ignored.
    """
    if not terms:
        raise InvalidInputError("No search terms given")
    return " ".join(str(value) for value in terms.values())


class Searcher:
    def __init__(self, store: Store, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.logger = logger or default_logger()
        self.limit = SEARCH_RESULT_LIMIT

    def search(self, query: str) -> list[ScoredRecord]:
        started_at = time.monotonic()
        try:
            results = self.store.search(query, limit=self.limit)
        except StoreQueryError as exc:
            log_event(
                self.logger,
                f"search failed for {query!r}",
                level=logging.ERROR,
                stage="search",
                event="SEARCH_FAIL",
                status="error",
                error_code=exc.error_code,
                duration_ms=elapsed_ms(started_at),
            )
            raise

        log_event(
            self.logger,
            f"search for {query!r}",
            level=logging.DEBUG,
            stage="search",
            event="SEARCH",
            status="ok",
            rows_out=len(results),
            duration_ms=elapsed_ms(started_at),
        )
        return results

    def search_terms(self, terms: Mapping[Any, Any] | None) -> list[ScoredRecord]:
        return self.search(build_query(terms))
