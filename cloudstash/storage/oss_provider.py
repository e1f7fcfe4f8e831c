"""
Aliyun OSS storage provider.

Uses the oss2 SDK. oss2 raises oss2.exceptions.OssError subclasses carrying
status/code/message, which classify_error() understands directly. Listing is
v1 marker-based.
"""

from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import (
    DEFAULT_CONNECT_TIMEOUT, DOWNLOAD_CHUNK_SIZE, MAX_BATCH_DELETE,
    MULTIPART_CHUNK_SIZE, MULTIPART_THRESHOLD, TRANSFER_MAX_CONCURRENCY,
)
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.pagination import build_list_result, marker_token
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import iter_reader
from cloudstash.time_utilities import iso_from_any

# Lazy import: oss2 is only needed when an OSS provider is built
_oss2 = None


def _ensure_oss2():
    global _oss2
    if _oss2 is None:
        import oss2

        _oss2 = oss2


class OSSStorageProvider(BaseStorageProvider):
    """Aliyun Object Storage Service."""

    provider_type = ProviderType.OSS
    display_name = "Aliyun OSS"
    batch_limit = MAX_BATCH_DELETE

    def _endpoint(self) -> str:
        if self.config.endpoint:
            return self.config.endpoint
        return f"https://{self.config.region}.aliyuncs.com"

    def _auth(self):
        _ensure_oss2()
        return _oss2.Auth(self.config.access_key_id, self.config.secret_access_key)

    def _proxies(self) -> Optional[Dict[str, str]]:
        if self.config.proxy is None:
            return None
        self._logger.info(f"Using proxy {self.config.proxy.masked_url}")
        return self.config.proxy.as_requests_proxies()

    def _create_client(self):
        _ensure_oss2()
        return _oss2.Bucket(
            self._auth(),
            self._endpoint(),
            self.config.bucket,
            connect_timeout=DEFAULT_CONNECT_TIMEOUT,
            proxies=self._proxies(),
        )

    def _probe(self) -> None:
        self._client.get_bucket_info()

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        _ensure_oss2()
        _oss2.resumable_upload(
            self._client, key, local_path,
            multipart_threshold=MULTIPART_THRESHOLD,
            part_size=MULTIPART_CHUNK_SIZE,
            progress_callback=reporter.consumed_callback,
            num_threads=TRANSFER_MAX_CONCURRENCY,
        )
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        result = self._client.get_object(key)
        return iter_reader(result, DOWNLOAD_CHUNK_SIZE), result.content_length

    def _read_bytes(self, key: str) -> bytes:
        return self._client.get_object(key).read()

    def _delete(self, key: str) -> None:
        self._client.delete_object(key)

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], Dict[str, str]]:
        result = self._client.batch_delete_objects(keys)
        return list(result.deleted_keys), {}

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        result = self._client.list_objects(
            prefix=prefix,
            delimiter=delimiter or "",
            marker=continuation_token or "",
            max_keys=max_keys,
        )
        files = [
            ObjectEntry(
                key=obj.key,
                size=obj.size,
                last_modified=iso_from_any(obj.last_modified),
                etag=(obj.etag or "").strip('"') or None,
                storage_class=getattr(obj, "storage_class", None) or "STANDARD",
            )
            for obj in result.object_list
            if not (delimiter and obj.key == prefix)
        ]
        folders = list(result.prefix_list)
        token = marker_token(
            result.is_truncated, result.next_marker,
            [o.key for o in result.object_list] + folders,
        )
        return build_list_result(files, folders, token)

    def _head(self, key: str) -> FileInfo:
        result = self._client.head_object(key)
        headers = result.headers or {}
        return FileInfo(
            key=key,
            size=result.content_length or 0,
            last_modified=iso_from_any(result.last_modified),
            etag=(result.etag or "").strip('"') or None,
            content_type=result.content_type,
            storage_class=headers.get("x-oss-storage-class") or "STANDARD",
        )

    def _put_marker(self, key: str) -> None:
        self._client.put_object(key, b"")

    def _list_buckets(self) -> List[BucketInfo]:
        _ensure_oss2()
        service = _oss2.Service(self._auth(), self._endpoint(), proxies=self._proxies())
        result = service.list_buckets()
        return [
            BucketInfo(name=b.name, region=b.location, creation_date=iso_from_any(b.creation_date))
            for b in result.buckets
        ]

    def _default_base_url(self) -> str:
        return f"https://{self.config.bucket}.{self.config.region}.aliyuncs.com"

    def _signer(self):
        def _sign(key: str, expires_in: int) -> str:
            return self._client.sign_url("GET", key, expires_in)
        return _sign
