"""
Batch mutation chunking.

Splits large delete requests at the backend limit, issues the chunks one
after another and keeps going when a chunk fails. Every requested key ends
up either in DeleteResult.deleted or in DeleteResult.failed.
"""

import logging
from typing import Callable, Dict, Iterator, List, Sequence, Tuple, TypeVar

from cloudstash.storage.base import DeleteResult
from cloudstash.storage.errors import ErrorKind, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# delete_batch(chunk) -> (confirmed keys, {key: reason})
BatchDeleter = Callable[[List[str]], Tuple[List[str], Dict[str, str]]]


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most size items."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def _finish(requested: List[str], deleted: List[str], failed: Dict[str, str]) -> DeleteResult:
    confirmed = set(deleted)
    for key in requested:
        if key not in confirmed and key not in failed:
            failed[key] = "Deletion was not confirmed by the backend"
    return DeleteResult(success=bool(deleted) or not failed, deleted=deleted, failed=failed)


def run_batched_delete(keys: Sequence[str], limit: int, delete_batch: BatchDeleter,
                       provider: str = None) -> DeleteResult:
    """Delete keys in chunks of at most limit, continuing past failed chunks."""
    requested = list(dict.fromkeys(keys))
    deleted: List[str] = []
    failed: Dict[str, str] = {}

    for index, chunk in enumerate(chunked(requested, limit), start=1):
        try:
            chunk_deleted, chunk_failed = delete_batch(chunk)
        except Exception as exc:
            error = classify_error(exc, provider)
            logger.warning(f"Batch {index} ({len(chunk)} keys) failed: {error}")
            for key in chunk:
                failed[key] = str(error)
            continue

        deleted.extend(chunk_deleted)
        failed.update(chunk_failed)
        if chunk_failed:
            logger.warning(f"Batch {index}: {len(chunk_failed)} of {len(chunk)} keys failed")

    return _finish(requested, deleted, failed)


def run_sequential_delete(keys: Sequence[str], delete_one: Callable[[str], object],
                          provider: str = None) -> DeleteResult:
    """Delete keys one at a time for backends without a batch endpoint."""
    requested = list(dict.fromkeys(keys))
    deleted: List[str] = []
    failed: Dict[str, str] = {}

    for key in requested:
        try:
            delete_one(key)
        except Exception as exc:
            error = classify_error(exc, provider)
            if error.kind == ErrorKind.NOT_FOUND:
                deleted.append(key)
                continue
            logger.warning(f"Failed to delete {key}: {error}")
            failed[key] = str(error)
            continue
        deleted.append(key)

    return _finish(requested, deleted, failed)
