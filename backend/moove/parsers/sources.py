"""
Readable sources for the chunked export scanner.

A source knows its file name and total size in bytes and can read an
arbitrary byte range without loading the rest of the document.
"""

import asyncio
import os
from abc import ABC, abstractmethod

from fastapi import UploadFile

from moove.errors import SourceReadError


class DocumentSource(ABC):
    """Random-access byte source for a single export document."""

    name: str
    size: int

    @abstractmethod
    async def read_range(self, start: int, end: int) -> bytes:
        """Return the bytes in ``[start, end)``."""


class FileSource(DocumentSource):
    """An export.xml on the local filesystem."""

    def __init__(self, path: str):
        self.path = path
        self.name = os.path.basename(path)
        try:
            self.size = os.path.getsize(path)
        except OSError as exc:
            raise SourceReadError(f"Unable to open {path}: {exc}")

    def _read(self, start: int, end: int) -> bytes:
        with open(self.path, "rb") as f:
            f.seek(start)
            return f.read(end - start)

    async def read_range(self, start: int, end: int) -> bytes:
        return await asyncio.to_thread(self._read, start, end)


class UploadFileSource(DocumentSource):
    """An export.xml received as a multipart upload.

    Starlette spools large uploads to a temporary file, so seeking and reading
    a range does not pull the whole body into memory.
    """

    def __init__(self, upload: UploadFile):
        self.upload = upload
        self.name = upload.filename or ""
        size = upload.size
        if size is None:
            upload.file.seek(0, os.SEEK_END)
            size = upload.file.tell()
        self.size = size

    async def read_range(self, start: int, end: int) -> bytes:
        await self.upload.seek(start)
        return await self.upload.read(end - start)
