"""Exceptions raised by the blob export job."""


class BlobExportError(Exception):
    """Base exception for all blob export failures."""


class ConfigurationError(BlobExportError):
    """A required setting is missing, blank or malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class SourceResolutionError(BlobExportError):
    """The export storage account cannot be found or read."""


class CopyError(BlobExportError):
    """A single blob copy did not reach a successful terminal state."""

    def __init__(self, object_name: str, message: str):
        super().__init__(message)
        self.object_name = object_name


class CopyTimeoutError(CopyError):
    """A blob copy was still pending when its deadline expired."""


class PublishError(BlobExportError):
    """Uploading the run log or result to the destination failed."""
