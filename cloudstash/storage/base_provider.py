"""
Base class for storage provider facades.

BaseStorageProvider implements the public operations once (search, preview,
batch delete driving, URL resolution, statistics, folder emulation, error
classification) on top of a small set of backend hooks that each facade
fills in:

    _create_client()        build the transport client
    _probe()                cheapest call proving credentials and bucket
    _upload(...)            store a local file, report through the reporter; returns
                            the final key, or an ObjectEntry when the host names the file
    _open_download(key)     (chunk iterator, total size or None)
    _delete(key)            delete one key
    _delete_batch(keys)     (deleted, failed) for one chunk, when batch_limit is set
    _list(...)              one normalized ListResult page
    _head(key)              FileInfo, raising a NOT_FOUND StorageError when missing
    _read_bytes(key)        whole small object body for previews
    _signer()/_default_base_url()  inputs to the URL resolver
"""

import logging
import os
import threading
from typing import Callable, Iterator, List, Optional, Tuple

from cloudstash.constants import (
    DEFAULT_MAX_KEYS, DEFAULT_PREVIEW_MAX_SIZE, DEFAULT_SIGNED_URL_EXPIRY,
)
from cloudstash.storage.base import (
    BucketInfo, ConnectionResult, ContentPreview, DeleteResult, FileInfo, ListResult,
    ObjectEntry, OperationResult, ProgressCallback, ProviderConfig, ProviderType,
    SearchResult, StorageStats, UploadOutcome,
)
from cloudstash.storage.batching import run_batched_delete, run_sequential_delete
from cloudstash.storage.config import normalize_config
from cloudstash.storage.errors import (
    ErrorKind, StorageError, classify_error, describe_for_user,
)
from cloudstash.storage.preview import build_preview
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import stream_to_file
from cloudstash.storage.urls import KeySigner, UrlResolver, UrlSigner


class BaseStorageProvider:
    """
    Shared implementation of StorageProviderProtocol.

    Error policy: test_connection() never raises; file_exists() returns False
    for a missing key and raises for anything else; every other operation
    raises StorageError on failure.
    """

    provider_type: ProviderType = None
    display_name = "Storage"
    # Maximum keys per native batch delete; None means delete one at a time
    batch_limit: Optional[int] = None
    # Key written by create_folder(); object stores use the bare prefix
    folder_marker = ""

    def __init__(self, config: ProviderConfig, client=None):
        if self.provider_type is not None and config.provider != self.provider_type:
            raise ValueError(
                f"{self.__class__.__name__} cannot be built from a {config.provider.value} config"
            )
        self.config = normalize_config(config)
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._client = client if client is not None else self._create_client()
        self._urls = UrlResolver(
            public_domain=self.config.public_domain,
            default_base=self._default_base_url(),
            is_private=self.config.is_private,
            signer=self._signer(),
            domain_signer=self._domain_signer(),
            provider=self.provider_key,
        )
        self._logger.debug(f"{self.display_name} provider ready: {self.config!r}")

    @property
    def provider_key(self) -> str:
        return self.provider_type.value if self.provider_type else "unknown"

    @property
    def bucket_name(self) -> Optional[str]:
        return self.config.bucket

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    def _create_client(self):
        raise NotImplementedError

    def _probe(self) -> None:
        raise NotImplementedError

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter):
        """Store the file and return the final key, or the stored ObjectEntry."""
        raise NotImplementedError

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], dict]:
        raise NotImplementedError

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        raise NotImplementedError

    def _head(self, key: str) -> FileInfo:
        raise NotImplementedError

    def _read_bytes(self, key: str) -> bytes:
        chunks, _total = self._open_download(key)
        return b"".join(chunks)

    def _list_buckets(self) -> List[BucketInfo]:
        raise StorageError(
            ErrorKind.UNSUPPORTED,
            f"{self.display_name} does not support listing buckets",
            provider=self.provider_key,
        )

    def _default_base_url(self) -> Optional[str]:
        return None

    def _signer(self) -> Optional[KeySigner]:
        return None

    def _domain_signer(self) -> Optional[UrlSigner]:
        return None

    # ------------------------------------------------------------------
    # Error funnel
    # ------------------------------------------------------------------

    def _call(self, action: str, func: Callable, *args, **kwargs):
        """Run a backend call, converting any failure into a StorageError."""
        try:
            return func(*args, **kwargs)
        except StorageError as err:
            if err.provider is None:
                err.provider = self.provider_key
            raise
        except Exception as exc:
            error = classify_error(exc, self.provider_key)
            self._logger.debug(f"{action} failed: {exc!r}")
            raise error from exc

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def test_connection(self) -> ConnectionResult:
        try:
            self._call("test_connection", self._probe)
        except StorageError as err:
            self._logger.warning(f"{self.display_name} connection test failed: {err}")
            return ConnectionResult(
                success=False,
                message=describe_for_user(err),
                error=describe_for_user(err),
                error_kind=err.kind.value,
            )
        return ConnectionResult(success=True, message=f"Connected to {self.display_name}")

    def upload_file(self, local_path: str, key: str,
                    on_progress: Optional[ProgressCallback] = None,
                    cancel_event: Optional[threading.Event] = None) -> OperationResult[UploadOutcome]:
        if not os.path.isfile(local_path):
            raise StorageError(
                ErrorKind.NOT_FOUND, f"Local file not found: {local_path}",
                provider=self.provider_key,
            )
        key = key.lstrip("/")
        reporter = ProgressReporter(
            os.path.getsize(local_path), on_progress, cancel_event, self.provider_key,
        )
        stored = self._call("upload", self._upload, local_path, key, reporter)
        reporter.finish()
        if isinstance(stored, ObjectEntry):
            final_key, url = stored.key, stored.public_url
        else:
            final_key, url = stored, self._urls.public_address(stored)

        self._logger.info(f"Uploaded {local_path} to {self.display_name} as {final_key}")
        outcome = UploadOutcome(
            key=final_key,
            bucket=self.bucket_name,
            url=url,
        )
        return OperationResult(success=True, data=outcome, message="Upload succeeded")

    def download_file(self, key: str, local_path: str,
                      on_progress: Optional[ProgressCallback] = None,
                      cancel_event: Optional[threading.Event] = None) -> OperationResult:
        reporter = ProgressReporter(0, on_progress, cancel_event, self.provider_key)

        def _run():
            chunks, total = self._open_download(key)
            reporter.set_total(total)
            return stream_to_file(chunks, local_path, reporter)

        written = self._call("download", _run)
        self._logger.info(f"Downloaded {key} from {self.display_name} ({written} bytes)")
        return OperationResult(success=True, message="Download succeeded")

    def delete_file(self, key: str) -> OperationResult:
        try:
            self._call("delete", self._delete, key)
        except StorageError as err:
            if err.kind != ErrorKind.NOT_FOUND:
                raise
            self._logger.debug(f"{key} was already absent")
        else:
            self._logger.info(f"Deleted {key} from {self.display_name}")
        return OperationResult(success=True, message="Delete succeeded")

    def delete_files(self, keys: List[str]) -> DeleteResult:
        if not keys:
            return DeleteResult(success=True)
        if self.batch_limit:
            result = run_batched_delete(keys, self.batch_limit, self._delete_batch, self.provider_key)
        else:
            result = run_sequential_delete(keys, self._delete, self.provider_key)
        self._logger.info(f"{self.display_name} batch delete: {result.summary()}")
        return result

    def list_files(self, prefix: str = "", delimiter: Optional[str] = None,
                   continuation_token: Optional[str] = None,
                   max_keys: int = DEFAULT_MAX_KEYS) -> OperationResult[ListResult]:
        if max_keys <= 0:
            raise ValueError(f"max_keys must be positive, got {max_keys}")
        page = self._call("list", self._list, prefix or "", delimiter or None,
                          continuation_token or None, max_keys)
        return OperationResult(success=True, data=page)

    def iter_objects(self, prefix: str = "", page_size: int = DEFAULT_MAX_KEYS) -> Iterator[ObjectEntry]:
        """Walk every object under prefix, one page in flight at a time."""
        token = None
        while True:
            page = self.list_files(prefix, None, token, page_size).data
            yield from page.files
            if not page.is_truncated:
                return
            token = page.next_continuation_token

    def search_files(self, term: str, prefix: str = "",
                     max_keys: int = DEFAULT_MAX_KEYS) -> OperationResult[SearchResult]:
        needle = (term or "").lower()
        matches = [entry for entry in self.iter_objects(prefix, max_keys)
                   if needle in entry.key.lower()]
        return OperationResult(success=True, data=SearchResult(files=matches))

    def get_presigned_url(self, key: str, expires_in: int = DEFAULT_SIGNED_URL_EXPIRY) -> str:
        return self._call("presign", self._urls.signed, key, expires_in)

    def get_public_url(self, key: str) -> Optional[str]:
        return self._call("public_url", self._urls.resolve, key)

    def file_exists(self, key: str) -> bool:
        try:
            self._call("exists", self._head, key)
        except StorageError as err:
            if err.kind == ErrorKind.NOT_FOUND:
                return False
            raise
        return True

    def get_file_info(self, key: str) -> OperationResult[FileInfo]:
        info = self._call("info", self._head, key)
        return OperationResult(success=True, data=info)

    def get_file_content(self, key: str,
                         max_size: int = DEFAULT_PREVIEW_MAX_SIZE) -> OperationResult[ContentPreview]:
        info = self._call("info", self._head, key)
        preview = build_preview(
            key, info.size, info.content_type,
            lambda: self._call("read", self._read_bytes, key),
            max_size=max_size,
        )
        return OperationResult(success=True, data=preview)

    def get_storage_stats(self, prefix: str = "") -> OperationResult[StorageStats]:
        count = 0
        size = 0
        for entry in self.iter_objects(prefix):
            count += 1
            size += entry.size
        return OperationResult(success=True, data=StorageStats(total_count=count, total_size=size))

    def create_folder(self, prefix: str) -> OperationResult:
        """Create an empty marker so the folder shows up in delimiter listings."""
        folder = prefix.strip("/") + "/"
        if folder == "/":
            raise ValueError("Folder name cannot be empty")
        self._call("create_folder", self._put_marker, folder + self.folder_marker)
        self._logger.info(f"Created folder {folder} on {self.display_name}")
        return OperationResult(success=True, data=folder, message="Folder created")

    def _put_marker(self, key: str) -> None:
        raise StorageError(
            ErrorKind.UNSUPPORTED,
            f"{self.display_name} does not support folders",
            provider=self.provider_key,
        )

    def delete_folder(self, prefix: str) -> DeleteResult:
        folder = prefix.strip("/") + "/"
        keys = [entry.key for entry in self.iter_objects(folder)]
        return self.delete_files(keys)

    def list_buckets(self) -> OperationResult[List[BucketInfo]]:
        buckets = self._call("list_buckets", self._list_buckets)
        return OperationResult(success=True, data=buckets)

    def get_provider_name(self) -> str:
        return self.display_name
