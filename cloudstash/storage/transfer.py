"""
Streaming helpers shared by every provider's upload and download paths.
"""

import os
from typing import BinaryIO, Iterable, Iterator

from cloudstash.constants import DOWNLOAD_CHUNK_SIZE
from cloudstash.storage.progress import ProgressReporter


def iter_reader(reader, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield chunks from any object with read(n) until it is exhausted."""
    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        yield chunk


def stream_to_file(chunks: Iterable[bytes], local_path: str,
                   reporter: ProgressReporter) -> int:
    """
    Write chunks to local_path, reporting progress after each one.

    Errors propagate immediately. A partially written file is left on disk;
    removing it is the caller's decision.
    """
    directory = os.path.dirname(local_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    written = 0
    with open(local_path, "wb") as f:
        for chunk in chunks:
            reporter.check_cancelled()
            if not chunk:
                continue
            f.write(chunk)
            written += len(chunk)
            reporter.update(written)

    reporter.finish()
    return written


class ProgressReader:
    """
    File wrapper that reports bytes as the transport reads them.

    Used where the SDK accepts a file object but has no progress hook.
    """

    def __init__(self, fileobj: BinaryIO, reporter: ProgressReporter):
        self._fileobj = fileobj
        self._reporter = reporter

    def read(self, size: int = -1) -> bytes:
        self._reporter.check_cancelled()
        data = self._fileobj.read(size)
        if data:
            self._reporter.increment(len(data))
        return data

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        position = self._fileobj.seek(offset, whence)
        # A transport rewinding for a retry re-reads bytes already counted
        self._reporter.transferred = min(self._reporter.transferred, position)
        return position

    def __getattr__(self, name):
        return getattr(self._fileobj, name)
