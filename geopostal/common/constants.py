"""Application constants."""

USER_AGENT = "geopostal/0.3 (+postal-code-import)"
DEFAULT_BATCH_SIZE = 1024
SEARCH_RESULT_LIMIT = 20
DEFAULT_ENCODING = "utf-8"
# GeoNames postal code dump layout; column 4 (admin code1) is not stored.
RECORD_COLUMNS = {
    0: "country_code",
    1: "postal_code",
    2: "place_name",
    3: "admin_name1",
    5: "admin_name2",
}
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "batch",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
# Writer threads used when max_in_flight is unbounded.
DEFAULT_WRITE_WORKERS = 4
