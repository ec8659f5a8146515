"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for geopostal failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class SourceNotFoundError(PipelineError):
    """Raised when an ingest source file does not exist."""

    error_code = "FILE_NOT_FOUND"


class InvalidInputError(PipelineError):
    """Raised when a caller passes an absent or empty argument."""

    error_code = "INVALID_INPUT"


class StoreWriteError(PipelineError):
    """Raised by a store when a batch or record could not be persisted."""

    error_code = "STORE_WRITE_FAILURE"


class StoreQueryError(PipelineError):
    """Raised by a store when a search could not be executed."""

    error_code = "STORE_QUERY_FAILURE"


class DownloadError(PipelineError):
    error_code = "DOWNLOAD_ERROR"
