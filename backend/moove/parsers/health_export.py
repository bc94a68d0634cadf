"""
Parser for Apple Health ``export.xml`` files.

Reads the export in chunks (10MB by default) so 100MB+ files never sit in
memory as a single string, runs every fragment through the workout, body
metric and activity summary extractors, and returns the sorted results. Only
the current chunk, the carry-over text and the accumulated records are held
at any time.

Nothing is written to the database here; see ``moove.services.health_merge``.
"""

import asyncio
import logging
from typing import Callable, Optional

from moove.config import settings
from moove.errors import UnsupportedFormatError
from moove.parsers.extractors import (
    extract_activity_days,
    extract_body_metrics,
    extract_workouts,
)
from moove.parsers.records import HealthImportResult, ImportAccumulator, ImportProgress
from moove.parsers.scanner import iter_fragments
from moove.parsers.sources import DocumentSource, FileSource

logger = logging.getLogger(__name__)

MB = 1024 * 1024

ARCHIVE_SUFFIXES = (".zip", ".gz", ".tgz", ".tar", ".bz2", ".xz", ".7z", ".rar")

ProgressCallback = Callable[[ImportProgress], None]


def validate_export_name(name: Optional[str]) -> None:
    """Reject archives and anything that is not an .xml document."""
    file_name = (name or "").lower()
    if file_name.endswith(ARCHIVE_SUFFIXES):
        raise UnsupportedFormatError(
            "Please unzip the Apple Health export first and select the "
            "export.xml file inside."
        )
    if not file_name.endswith(".xml"):
        raise UnsupportedFormatError("Please select an export.xml file.")


def _ignore_progress(progress: ImportProgress) -> None:
    pass


async def parse_health_export(
    source: DocumentSource,
    on_progress: Optional[ProgressCallback] = None,
    *,
    chunk_size: Optional[int] = None,
    max_carryover: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> HealthImportResult:
    """Parse an Apple Health export into workouts, body metrics and activity days.

    Args:
        source: The export document.
        on_progress: Called with an ``ImportProgress`` before parsing, after
            every fragment, and once with ``phase="done"`` at the end.
        chunk_size: Bytes per read; defaults to ``HEALTH_IMPORT_CHUNK_SIZE``.
        max_carryover: Largest carry-over (characters) tolerated without a
            safe split point; defaults to
            ``HEALTH_IMPORT_MAX_CARRYOVER_CHUNKS`` chunks.
        cancel_event: Checked before every chunk read.

    Returns:
        A ``HealthImportResult`` with every list sorted ascending.

    Raises:
        UnsupportedFormatError: The file is an archive or not .xml.
        SourceReadError: A chunk could not be read; no partial result.
        ImportCancelledError: *cancel_event* was set mid-import.
    """
    validate_export_name(source.name)

    report = on_progress or _ignore_progress
    if chunk_size is None:
        chunk_size = settings.HEALTH_IMPORT_CHUNK_SIZE
    if max_carryover is None:
        max_carryover = chunk_size * settings.HEALTH_IMPORT_MAX_CARRYOVER_CHUNKS

    size_mb = round(source.size / MB)
    logger.info("Parsing health export %r (%d bytes)", source.name, source.size)
    report(ImportProgress("parsing", 0, f"Processing file ({size_mb} MB)..."))

    accumulator = ImportAccumulator()
    async for fragment in iter_fragments(
        source,
        chunk_size=chunk_size,
        max_carryover=max_carryover,
        cancel_event=cancel_event,
    ):
        extract_workouts(fragment.text, accumulator.workouts)
        extract_body_metrics(fragment.text, accumulator.body_metrics)
        extract_activity_days(fragment.text, accumulator.activity_days)

        report(ImportProgress(
            "parsing",
            fragment.percent,
            f"Processing ({round(fragment.offset / MB)}/{size_mb} MB) - "
            f"{accumulator.describe()}",
        ))

    result = accumulator.finalize()
    counts = result.counts()
    report(ImportProgress(
        "done",
        100,
        f"Found {counts['workouts']} workouts, {counts['body_metrics']} measurements, "
        f"{counts['activity_days']} activity days",
    ))
    logger.info("Health export parsed: %s", counts)
    return result


def parse_health_export_file(
    path: str,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs,
) -> HealthImportResult:
    """Synchronous wrapper around ``parse_health_export`` for a local file."""
    return asyncio.run(parse_health_export(FileSource(path), on_progress, **kwargs))
