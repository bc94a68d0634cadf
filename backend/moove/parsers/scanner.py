"""
Chunked scanner for very large Apple Health exports.

The document is read in fixed-size byte chunks. Decoded text that might end
inside a record is carried over and prepended to the next chunk; everything
before the last safe cut point is yielded as a fragment. Concatenating every
fragment reproduces the document exactly.
"""

import asyncio
import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from moove.errors import CarryoverOverflowError, ImportCancelledError, SourceReadError
from moove.parsers.extractors import WORKOUT_CLOSE, WORKOUT_TAG_RE
from moove.parsers.sources import DocumentSource

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
SELF_CLOSE = "/>"

# Share of the progress bar used by parsing; the rest is for finalization
PARSING_PERCENT = 95


@dataclass
class Fragment:
    text: str
    offset: int  # bytes consumed so far
    total: int  # document size in bytes
    final: bool = False

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return PARSING_PERCENT
        return self.offset * PARSING_PERCENT // self.total


def find_safe_cut(text: str) -> int:
    """Index after which *text* may hold a partial record, or 0 if none.

    The cut is the later of the end of the last self-closing element and the
    end of the last ``</Workout>``. A workout still open at that point is kept
    whole by cutting just before its opening tag instead.
    """
    last_self_close = text.rfind(SELF_CLOSE)
    last_workout_close = text.rfind(WORKOUT_CLOSE)
    cut = max(
        last_self_close + len(SELF_CLOSE) if last_self_close >= 0 else -1,
        last_workout_close + len(WORKOUT_CLOSE) if last_workout_close >= 0 else -1,
    )
    if cut <= 0:
        return 0

    search_from = last_workout_close + len(WORKOUT_CLOSE) if last_workout_close >= 0 else 0
    for match in WORKOUT_TAG_RE.finditer(text, search_from):
        if match.group("self_closing"):
            continue
        if match.start() < cut:
            cut = match.start()
        break
    return cut


async def iter_fragments(
    source: DocumentSource,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_carryover: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[Fragment]:
    """Yield boundary-safe fragments of *source*, one chunk read at a time.

    Iterations that find no safe cut yield nothing and keep accumulating.
    Raises ``SourceReadError`` on I/O failure or when the carry-over grows past
    *max_carryover* characters, and ``ImportCancelledError`` once
    *cancel_event* is set.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    total = source.size
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    offset = 0

    while offset < total:
        if cancel_event is not None and cancel_event.is_set():
            raise ImportCancelledError(f"Import cancelled after {offset} of {total} bytes")

        end = min(offset + chunk_size, total)
        try:
            raw = await source.read_range(offset, end)
        except OSError as exc:
            raise SourceReadError(f"Failed to read bytes {offset}-{end}: {exc}")
        if len(raw) != end - offset:
            raise SourceReadError(
                f"Short read at bytes {offset}-{end}: got {len(raw)} bytes"
            )

        offset = end
        final = offset >= total
        text = pending + decoder.decode(raw, final=final)

        if final:
            pending = ""
            yield Fragment(text=text, offset=offset, total=total, final=True)
            break

        cut = find_safe_cut(text)
        if cut > 0:
            pending = text[cut:]
        else:
            pending = text
        if max_carryover is not None and len(pending) > max_carryover:
            raise CarryoverOverflowError(
                f"No safe split point in {len(pending)} characters "
                f"(limit {max_carryover}) ending at byte {offset}"
            )
        if cut <= 0:
            logger.debug("No safe cut before byte %d, carrying %d chars", offset, len(pending))
            continue

        yield Fragment(text=text[:cut], offset=offset, total=total)
