"""
Google Cloud Storage provider.

Uses google-cloud-storage with service-account credentials. The proxy is
applied to a dedicated google-auth AuthorizedSession handed to the client,
so it never leaks into other providers. GCS has no multi-object delete in
this client, so batch deletes fall back to sequential single deletes.
"""

import json
import mimetypes
from datetime import timedelta
from typing import Iterator, List, Optional, Tuple

from cloudstash.constants import DOWNLOAD_CHUNK_SIZE, GCS_CHUNK_SIZE, GCS_PUBLIC_BASE
from cloudstash.config_validator import ConfigValidationError
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.errors import ErrorKind, StorageError
from cloudstash.storage.pagination import build_list_result
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import ProgressReader
from cloudstash.time_utilities import iso_from_any

# Lazy import: the google client libraries are only needed for GCS
_storage = None
_service_account = None
_AuthorizedSession = None

GCS_SCOPES = ["https://www.googleapis.com/auth/devstorage.full_control"]


def _ensure_gcs():
    global _storage, _service_account, _AuthorizedSession
    if _storage is None:
        from google.cloud import storage
        from google.oauth2 import service_account
        from google.auth.transport.requests import AuthorizedSession

        _storage = storage
        _service_account = service_account
        _AuthorizedSession = AuthorizedSession


def _iter_blob_reader(reader) -> Iterator[bytes]:
    with reader:
        while True:
            chunk = reader.read(DOWNLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class GCSStorageProvider(BaseStorageProvider):
    """Google Cloud Storage."""

    provider_type = ProviderType.GCS
    display_name = "Google Cloud Storage"

    def _credentials(self):
        if self.config.credentials_json:
            try:
                info = json.loads(self.config.credentials_json)
            except ValueError as e:
                raise ConfigValidationError(
                    f"credentials_json is not valid JSON: {e}",
                    ["Paste the full service account key file contents",
                     "Or set key_filename to the path of the key file"]
                )
            return _service_account.Credentials.from_service_account_info(info, scopes=GCS_SCOPES)
        return _service_account.Credentials.from_service_account_file(
            self.config.key_filename, scopes=GCS_SCOPES,
        )

    def _create_client(self):
        _ensure_gcs()
        credentials = self._credentials()
        session = _AuthorizedSession(credentials)
        session.trust_env = False
        if self.config.proxy is not None:
            session.proxies.update(self.config.proxy.as_requests_proxies())
            self._logger.info(f"Using proxy {self.config.proxy.masked_url}")

        project = self.config.project_id or getattr(credentials, "project_id", None)
        return _storage.Client(project=project, credentials=credentials, _http=session)

    @property
    def _bucket(self):
        return self._client.bucket(self.config.bucket)

    def _not_found(self, key: str) -> StorageError:
        return StorageError(ErrorKind.NOT_FOUND, detail=f"No such object: {key}",
                            provider=self.provider_key, status=404)

    def _probe(self) -> None:
        if not self._bucket.exists():
            raise StorageError(ErrorKind.NOT_FOUND, detail=f"No such bucket: {self.config.bucket}",
                               provider=self.provider_key, status=404)

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        blob = self._bucket.blob(key, chunk_size=GCS_CHUNK_SIZE)
        content_type, _ = mimetypes.guess_type(key)
        with open(local_path, "rb") as f:
            blob.upload_from_file(
                ProgressReader(f, reporter),
                size=reporter.total,
                content_type=content_type,
                retry=None,
            )
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        blob = self._bucket.get_blob(key)
        if blob is None:
            raise self._not_found(key)
        return _iter_blob_reader(blob.open("rb")), blob.size

    def _read_bytes(self, key: str) -> bytes:
        return self._bucket.blob(key).download_as_bytes()

    def _delete(self, key: str) -> None:
        self._bucket.blob(key).delete()

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        iterator = self._client.list_blobs(
            self.config.bucket,
            prefix=prefix or None,
            delimiter=delimiter,
            max_results=max_keys,
            page_token=continuation_token,
        )
        # One page per call; the iterator's token resumes from here
        page = next(iterator.pages, None)
        blobs = list(page) if page is not None else []
        folders = sorted(getattr(page, "prefixes", ()) or ()) if page is not None else []

        files = [
            ObjectEntry(
                key=blob.name,
                size=blob.size or 0,
                last_modified=iso_from_any(blob.updated),
                etag=blob.etag,
                storage_class=blob.storage_class or "STANDARD",
            )
            for blob in blobs
            if not (delimiter and blob.name == prefix)
        ]
        return build_list_result(files, folders, iterator.next_page_token)

    def _head(self, key: str) -> FileInfo:
        blob = self._bucket.get_blob(key)
        if blob is None:
            raise self._not_found(key)
        return FileInfo(
            key=key,
            size=blob.size or 0,
            last_modified=iso_from_any(blob.updated),
            etag=blob.etag,
            content_type=blob.content_type,
            storage_class=blob.storage_class or "STANDARD",
        )

    def _put_marker(self, key: str) -> None:
        self._bucket.blob(key).upload_from_string(b"")

    def _list_buckets(self) -> List[BucketInfo]:
        return [
            BucketInfo(name=b.name, region=b.location, creation_date=iso_from_any(b.time_created))
            for b in self._client.list_buckets()
        ]

    def _default_base_url(self) -> str:
        return f"{GCS_PUBLIC_BASE}/{self.config.bucket}"

    def _signer(self):
        def _sign(key: str, expires_in: int) -> str:
            return self._bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="GET",
            )
        return _sign
