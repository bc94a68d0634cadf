"""
Errors raised by the Apple Health import pipeline.

Format, read and cancellation errors abort an import with no result.
``MalformedRecordError`` never leaves the extractors: the offending record is
dropped and the rest of the fragment is processed. ``StoreWriteError`` is
reported per category by the merge step.
"""


class HealthImportError(Exception):
    """Base class for health import failures."""


class UnsupportedFormatError(HealthImportError):
    """The selected file is an archive or not an export.xml document."""


class SourceReadError(HealthImportError):
    """A byte range of the export could not be read."""


class CarryoverOverflowError(SourceReadError):
    """No safe split point was found within the allowed carry-over size."""


class ImportCancelledError(HealthImportError):
    """The caller cancelled the import between chunk reads."""


class MalformedRecordError(HealthImportError):
    """A matched record had a field that could not be converted."""


class StoreWriteError(HealthImportError):
    """Persisting one category of imported records failed."""

    def __init__(self, category: str, message: str):
        super().__init__(message)
        self.category = category
